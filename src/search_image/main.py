"""
Main entry point for search-image.

This module provides the command line interface for indexing image files
and folders into the configured collection and querying it by image.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .app import App
from .config import Device, MobilenetConfig, Settings
from .errors import DeviceUnavailable, SearchImageError
from .models.device import resolve_device

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _usable_model_config(settings: Settings) -> MobilenetConfig:
    """Fall back to CPU when the configured device is unavailable."""
    config = settings.mobilenet_config()
    try:
        resolve_device(config.device)
    except DeviceUnavailable as e:
        logger.warning(f"Failed to use device {config.device.value}: {e}, using CPU instead")
        config = MobilenetConfig(kind=config.kind, device=Device.CPU)
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="search-image", description="Index and search images by similarity"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Add image files or folders")
    index.add_argument("paths", nargs="+", type=Path)

    query = subparsers.add_parser("query", help="Find images similar to an image")
    query.add_argument("image", type=Path)
    query.add_argument("-k", "--top-k", type=int, default=10)

    delete = subparsers.add_parser("delete", help="Delete points by id")
    delete.add_argument("ids", nargs="+")
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> None:
    app = await App.create(
        settings.db_config(),
        _usable_model_config(settings),
        cache_dir=settings.weights_cache_dir,
        workers=settings.preprocess_workers,
    )
    async with app:
        if args.command == "index":
            for path in args.paths:
                if path.is_dir():
                    ids = await app.add_folder(path)
                else:
                    ids = await app.add_images([path])
                logger.info(f"Indexed {len(ids)} images from {path}")
        elif args.command == "query":
            for hit in await app.search_image(args.image, args.top_k):
                print(json.dumps({"id": hit.id, "score": hit.score, **(hit.payload or {})}))
        elif args.command == "delete":
            await app.delete_images(args.ids)


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)
    try:
        settings = Settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    setup_logging(settings.log_level)

    try:
        asyncio.run(run(args, settings))
    except SearchImageError as e:
        logger.error(f"search-image failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
