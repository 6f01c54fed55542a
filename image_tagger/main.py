"""
Main entry point for the Image Tagger service.
"""

import asyncio
import sys
import argparse
import webbrowser
from .config import ConfigError, Settings, load_settings
from .image_index import IndexBuildError
from .state import TaggerState
from .tag_store import TagStoreError
from .logging import setup_logging, get_logger
from .web_server import run_web_server


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Image Tagger - tag a directory of images from the browser"
    )

    parser.add_argument(
        "config",
        help="Config TOML file path"
    )

    parser.add_argument(
        "-o", "--open",
        action="store_true",
        help="Open the web browser once the server is up"
    )

    parser.add_argument(
        "--log-level",
        help="Override log level from configuration"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show image counts per tag combination and exit"
    )

    return parser.parse_args(argv)


def show_stats(state: TaggerState) -> None:
    """Log the tag combination groups."""
    logger = get_logger("main")
    groups = state.stats()
    logger.info(f"📊 {len(state.index)} images in {len(groups)} tag combinations")
    for group in groups:
        logger.info(f"   {group.count:>6}  {group.signature or '(no tags)'}")


def serve(state: TaggerState, settings: Settings, open_browser: bool = False) -> None:
    """Serve the tagger state until interrupted."""
    url = settings.server_url()

    def on_started():
        if open_browser:
            webbrowser.open(url)

    asyncio.run(run_web_server(
        state,
        settings.img_dir,
        settings.server.host,
        settings.server.port,
        threads=settings.server.threads,
        on_started=on_started,
    ))


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        settings = load_settings(args.config, log_level=args.log_level)
    except ConfigError as e:
        setup_logging()
        get_logger("main").error(f"❌ {e}")
        return 1

    setup_logging(settings.log_level)
    logger = get_logger("main")
    logger.info(f"🚀 Starting Image Tagger with {len(settings.tags)} tags (multilabel: {settings.multilabel})")

    try:
        state = TaggerState.from_settings(settings)
    except (IndexBuildError, TagStoreError) as e:
        logger.error(f"❌ Startup failed: {e}")
        return 1

    try:
        if args.stats:
            show_stats(state)
            return 0

        serve(state, settings, open_browser=args.open)
        logger.info("✅ Service completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.info("⏹️  Service interrupted by user")
        return 0
    except OSError as e:
        logger.error(f"❌ Server error: {e}")
        return 1
    finally:
        state.close()


if __name__ == "__main__":
    sys.exit(main())
