"""
Entry point for running timehut as a module.

Usage:
    python -m timehut auth
    python -m timehut timeline --child 1 --pages 2
    python -m timehut search 生日
    python -m timehut upload a.jpg b.mp4 --tags "公園 夏天" --file-tags "b.mp4=生日 蛋糕"
    python -m timehut add-to-album 72157 5301 5302
    python -m timehut --config /path/to/config.yaml albums
"""

import argparse
import logging
import sys
from pathlib import Path

import requests

from timehut.config import Settings
from timehut.errors import TimehutError
from timehut.flickr import FlickrClient, authorize, photo_url
from timehut.renderer import TimelineView
from timehut.session import SessionStore
from timehut.timeline import TimelineContext
from timehut.uploader import UploadItem, upload_files

logger = logging.getLogger(__name__)


def print_timeline(view: TimelineView, out=None) -> None:
    out = out or sys.stdout
    print(f"{view.profile_emoji} {view.profile_name}  {view.current_age}", file=out)
    for section in view.sections:
        print(f"── {section.label} ({section.photo_count}) ──", file=out)
        for card in section.cards:
            who = f" · {card.uploader}" if card.uploader else ""
            print(f"  {card.date_label}{who}", file=out)
            for slot in card.slots:
                photo = slot.photo
                overlay = f"  [{slot.overlay}]" if slot.overlay else ""
                kind = "🎬" if photo.is_video else "🖼"
                title = photo.title or "未命名"
                print(f"    #{slot.index} {kind} {title}  {photo.age_string}{overlay}", file=out)


def _build_context(settings: Settings, child: int | None) -> TimelineContext:
    session = SessionStore(settings.session_db_path)
    ctx = TimelineContext(settings.children, session=session, per_page=settings.photos_per_page)
    if child is not None:
        ctx.switch_profile(child)
    return ctx


def cmd_timeline(args, settings: Settings, client: FlickrClient) -> int:
    ctx = _build_context(settings, args.child)
    if args.birth_date:
        ctx.override_birth_date(args.birth_date)
    if args.refresh:
        ctx.reset()
    for _ in range(args.pages):
        if ctx.exhausted:
            break
        ctx.load_next_page(client)
    if not ctx.photos:
        print("還沒有照片")
        return 0
    print_timeline(ctx.view)
    return 0


def cmd_search(args, settings: Settings, client: FlickrClient) -> int:
    ctx = _build_context(settings, args.child)
    if not ctx.photos:
        ctx.load_next_page(client)
    ctx.search(args.query, client)
    if not ctx.photos:
        print(f"沒有符合「{args.query}」的照片")
        return 0
    print_timeline(ctx.view)
    return 0


def cmd_show(args, settings: Settings, client: FlickrClient) -> int:
    ctx = _build_context(settings, args.child)
    if ctx.view is None:
        ctx.load_next_page(client)
    photo = ctx.view.resolve(args.index) if ctx.view else None
    if photo is None:
        print(f"No photo at index {args.index}", file=sys.stderr)
        return 1
    ctx.remember_scroll(args.index)
    print(f"{photo.title or '未命名'}  {photo.age_string}")
    print(client.get_media_url(photo) or photo_url(photo, "m"))
    prev_index = ctx.view.navigate(args.index, -1)
    next_index = ctx.view.navigate(args.index, 1)
    print(f"prev: {prev_index}  next: {next_index}")
    return 0


def file_tags_arg(value: str) -> tuple[str, str]:
    """Parse NAME=TAGS for --file-tags."""
    name, sep, tags = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=TAGS, got {value!r}")
    return name, tags


def cmd_upload(args, settings: Settings, client: FlickrClient) -> int:
    album_id = args.album
    if not album_id and args.child is not None:
        album_id = settings.children[args.child].album_id or None
    file_tags = dict(args.file_tags or [])
    unknown = sorted(set(file_tags) - {path.name for path in args.files})
    if unknown:
        print(f"Error: --file-tags names unknown files: {', '.join(unknown)}", file=sys.stderr)
        return 1
    items = [
        UploadItem(path=path, tags=file_tags.get(path.name, args.tags)) for path in args.files
    ]
    per_file = args.per_file or bool(file_tags)
    report = upload_files(
        client,
        items,
        album_id=album_id,
        tags=args.tags,
        mode="per_file" if per_file else settings.upload.tag_mode,
        uploader=args.uploader or settings.upload.uploader_name,
        date=args.date,
        max_workers=settings.upload.max_workers,
        max_file_size_mb=settings.upload.max_file_size_mb,
    )
    print(report.message)
    for result in report.results:
        if not result.success:
            print(f"  ✗ {result.filename}: {result.error}")
    return 0 if report.succeeded else 1


def cmd_albums(args, settings: Settings, client: FlickrClient) -> int:
    for album in client.get_albums():
        print(f"{album['id']}  {album['title']}")
    return 0


def cmd_info(args, settings: Settings, client: FlickrClient) -> int:
    info = client.get_photo_info(args.photo_id)
    if not info:
        print(f"No photo {args.photo_id}", file=sys.stderr)
        return 1
    title = (info.get("title") or {}).get("_content") or "未命名"
    dates = info.get("dates") or {}
    tags = " ".join(
        t.get("raw") or t.get("_content", "") for t in (info.get("tags") or {}).get("tag", [])
    )
    print(f"{info.get('id', args.photo_id)}  {title}")
    if dates.get("taken"):
        print(f"taken: {dates['taken']}")
    if tags:
        print(f"tags: {tags}")
    return 0


def _print_batch(results: list[dict]) -> int:
    ok = sum(1 for r in results if r["success"])
    print(f"{ok}/{len(results)} succeeded")
    for r in results:
        if not r["success"]:
            print(f"  ✗ {r['photo_id']}: {r['error']}")
    return 0 if ok == len(results) else 1


def cmd_delete(args, settings: Settings, client: FlickrClient) -> int:
    return _print_batch(client.delete_photos(args.photo_ids))


def cmd_tag(args, settings: Settings, client: FlickrClient) -> int:
    return _print_batch(client.add_tags_to_photos(args.photo_ids, args.tags))


def cmd_add_to_album(args, settings: Settings, client: FlickrClient) -> int:
    return _print_batch(client.add_photos_to_album(args.photo_ids, args.album))


def cmd_auth(args, settings: Settings, client: FlickrClient) -> int:
    creds = authorize(settings.flickr)
    print(f"Authorized as {creds.username or creds.user_nsid}; token saved to "
          f"{settings.flickr.token_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Family photo timeline backed by Flickr")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("auth", help="Authorize with Flickr (OAuth)").set_defaults(func=cmd_auth)
    sub.add_parser("albums", help="List Flickr albums").set_defaults(func=cmd_albums)

    p = sub.add_parser("info", help="Show title, date taken and tags of one photo")
    p.add_argument("photo_id")
    p.set_defaults(func=cmd_info)

    p = sub.add_parser("delete", help="Delete photos")
    p.add_argument("photo_ids", nargs="+")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("tag", help="Add tags to photos")
    p.add_argument("photo_ids", nargs="+")
    p.add_argument("--tags", required=True, help="Space-separated tags")
    p.set_defaults(func=cmd_tag)

    p = sub.add_parser("add-to-album", help="Add photos to an album")
    p.add_argument("album", help="Album ID")
    p.add_argument("photo_ids", nargs="+")
    p.set_defaults(func=cmd_add_to_album)

    p = sub.add_parser("timeline", help="Show a child's timeline")
    p.add_argument("--child", type=int, help="Child index (default: last selected)")
    p.add_argument("--pages", type=int, default=1, help="Pages to load (default: 1)")
    p.add_argument("--birth-date", help="Override the birth date for this session")
    p.add_argument("--refresh", action="store_true", help="Ignore cached photos")
    p.set_defaults(func=cmd_timeline)

    p = sub.add_parser("search", help="Search title, description and tags")
    p.add_argument("query")
    p.add_argument("--child", type=int)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("show", help="Show one photo by timeline index")
    p.add_argument("index", type=int)
    p.add_argument("--child", type=int)
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("upload", help="Upload photos and videos")
    p.add_argument("files", nargs="+", type=Path)
    p.add_argument("--album", help="Album ID (default: the child's album)")
    p.add_argument("--child", type=int, help="Use this child's album")
    p.add_argument("--tags", default="", help="Space-separated tags")
    p.add_argument("--per-file", action="store_true", help="One request per file")
    p.add_argument(
        "--file-tags",
        action="append",
        type=file_tags_arg,
        metavar="NAME=TAGS",
        help="Tags for one file, replacing --tags for it (implies --per-file; repeatable)",
    )
    p.add_argument("--uploader", help="Uploader name written as a tag")
    p.add_argument("--date", help="Date taken, e.g. 2023-06-01 or 2023年06月")
    p.set_defaults(func=cmd_upload)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Load and validate configuration
    try:
        settings = Settings.from_yaml(args.config)
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {args.config}", file=sys.stderr)
        print("Create a config.yaml file based on config.example.yaml", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command in ("timeline", "search", "show") and not settings.children:
        print("Error: Invalid configuration: no children configured", file=sys.stderr)
        return 1
    if getattr(args, "child", None) is not None and not 0 <= args.child < len(settings.children):
        print(f"Error: No child at index {args.child}", file=sys.stderr)
        return 1

    client = FlickrClient.from_settings(settings.flickr)
    try:
        return args.func(args, settings, client)
    except (requests.RequestException, TimehutError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"載入失敗: {e}\nRun the command again to retry.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
