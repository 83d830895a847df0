"""Command line tools for inspecting and exercising a PersonalMotd data directory."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv
from PIL import Image

from .addresses import AddressIdentityStore
from .composer import compose_icon
from .config import Settings, load_settings
from .errors import OutOfBoundsError
from .pipeline import GenerationPipeline, GenerationRun
from .plugin import ADDRESS_MAP_FILE_NAME, CONFIG_FILE_NAME, ICON_DIR_NAME, SKIN_DIR_NAME, load_base_icon
from .skins import ImageCache, SkinFetcher
from .utils import path_from_env

logger = logging.getLogger("personalmotd.cli")

DEFAULT_DATA_DIR = Path("personalmotd_data")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="personalmotd",
        description="Inspect the address map and build personalised server icons.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Data directory holding config.yml, addressmap.yml and the caches "
        "(defaults to PERSONALMOTD_DATA_DIR or ./personalmotd_data).",
    )
    parser.add_argument(
        "--server-root",
        type=Path,
        help="Server working directory a relative base-icon is resolved against "
        "(defaults to PERSONALMOTD_SERVER_ROOT or the current directory).",
    )
    parser.add_argument("--verbose", action="store_true", help="Increase logging verbosity.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("addresses", help="List stored address -> identity bindings.")

    render = subparsers.add_parser("render", help="Compose an icon from a local skin file.")
    render.add_argument("--skin", type=Path, required=True, help="Skin texture PNG.")
    render.add_argument("--base", type=Path, help="Base icon (defaults to the configured base-icon).")
    render.add_argument("--out", type=Path, required=True, help="Where to write the composed icon.")

    generate = subparsers.add_parser("generate", help="Fetch skins and regenerate icons for identities.")
    generate.add_argument("identities", nargs="+", help="Identities to regenerate.")
    return parser


def resolve_data_dir(explicit: Optional[Path]) -> Path:
    if explicit:
        return explicit.expanduser()
    return path_from_env("PERSONALMOTD_DATA_DIR", DEFAULT_DATA_DIR)


def resolve_server_root(explicit: Optional[Path]) -> Path:
    if explicit:
        return explicit.expanduser()
    return path_from_env("PERSONALMOTD_SERVER_ROOT", Path.cwd())


def cmd_addresses(data_dir: Path) -> int:
    store = AddressIdentityStore.load_file(data_dir / ADDRESS_MAP_FILE_NAME)
    records = store.records()
    print(f"Stored address mappings: {len(records)}")
    for record in records:
        print(f"  {record.address} -> {record.identity}")
    return 0


def cmd_render(settings: Settings, skin_path: Path, base_path: Optional[Path], out_path: Path) -> int:
    base = load_base_icon(base_path or settings.base_icon)
    if base is None:
        return 1
    try:
        with Image.open(skin_path) as skin_image:
            skin = skin_image.convert("RGBA")
    except (OSError, ValueError) as exc:
        logger.error("Failed to read skin %s: %s", skin_path, exc)
        return 1
    try:
        icon = compose_icon(base, skin, settings.face_rect, settings.hat_rect, settings.head_transform)
    except OutOfBoundsError as exc:
        logger.error("Cannot compose icon from %s: %s", skin_path, exc)
        return 1
    out_path.parent.mkdir(parents=True, exist_ok=True)
    icon.save(out_path, format="PNG")
    logger.info("Wrote %s", out_path)
    return 0


async def _generate_all(
    pipeline: GenerationPipeline,
    identities: Sequence[str],
    base_icon: Optional["Image.Image"],
    settings: Settings,
) -> List[GenerationRun]:
    return list(
        await asyncio.gather(
            *(pipeline.run(identity, base_icon=base_icon, settings=settings) for identity in identities)
        )
    )


def cmd_generate(data_dir: Path, settings: Settings, identities: Sequence[str]) -> int:
    pipeline = GenerationPipeline(
        SkinFetcher(settings.skin_url, timeout=settings.fetch_timeout),
        ImageCache(data_dir / SKIN_DIR_NAME, "skin"),
        ImageCache(data_dir / ICON_DIR_NAME, "icon"),
    )
    base_icon = load_base_icon(settings.base_icon)
    runs = asyncio.run(_generate_all(pipeline, identities, base_icon, settings))
    failed = 0
    for run in runs:
        detail = f" ({run.error})" if run.error else ""
        print(f"{run.identity}: {run.state.name}{detail}")
        if run.state.failed:
            failed += 1
    return 1 if failed else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else os.getenv("PERSONALMOTD_LOG_LEVEL", "INFO")
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logging.getLogger("PIL").setLevel(logging.ERROR)

    data_dir = resolve_data_dir(args.data_dir)
    if args.command == "addresses":
        return cmd_addresses(data_dir)
    settings = load_settings(data_dir / CONFIG_FILE_NAME, server_root=resolve_server_root(args.server_root))
    if args.command == "render":
        return cmd_render(settings, args.skin, args.base, args.out)
    return cmd_generate(data_dir, settings, args.identities)


if __name__ == "__main__":
    sys.exit(main())
