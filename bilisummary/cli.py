"""
Command-line interface for BiliSummary.

    bilisummary summarize BV1xx411c7mD https://www.bilibili.com/video/BV1yy...
    bilisummary summarize --file videos.csv
    bilisummary user 12345 --count 20
    bilisummary favorites --count 50
    bilisummary models
    bilisummary config set ai_model GLM-4-FlashX-250414

The platform credential is read from BILI_SESSDATA / BILI_JCT / BILI_AC_TIME_VALUE.
"""

import argparse
import json
import logging
import sys
from datetime import datetime

from bilisummary.core.config import AppConfig
from bilisummary.core.constants import (
    APP_NAME, APP_VERSION, LOG_DIR, ItemStatus,
    STANDALONE_SUBDIR, FAVORITES_SUBDIR, users_subdir,
)
from bilisummary.core.diagnostics import get_diagnostics
from bilisummary.core.error_codes import PipelineError
from bilisummary.core.models import ProgressItem
from bilisummary.core.services import Services, build_services
from bilisummary.core.url_parse import parse_input_lines, parse_input_file, validate_bvid

logger = logging.getLogger("bilisummary")

_STATUS_MARKS = {
    ItemStatus.PENDING: "..",
    ItemStatus.PROCESSING: ">>",
    ItemStatus.SUCCESS: "OK",
    ItemStatus.SKIPPED: "--",
    ItemStatus.FAILED: "!!",
    ItemStatus.NO_SUBTITLE: "NS",
}


def setup_logging(verbose: bool = False):
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.FileHandler(LOG_DIR / "app.log", encoding="utf-8"),
    ]
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _print_item(item: ProgressItem):
    if item.status == ItemStatus.PENDING:
        return
    mark = _STATUS_MARKS.get(item.status, "??")
    print(f"[{mark}] {item.video_id}  {item.title}  {item.message}", flush=True)


def _run_batch(services: Services, bvids: list[str], destination: str,
               titles: dict[str, str] | None = None) -> int:
    if not bvids:
        print("No videos to process.")
        return 1

    orchestrator = services.orchestrator
    orchestrator.subscribe(_print_item)
    orchestrator.submit(bvids, services.config.credential_from_env(), destination, titles)
    orchestrator.wait()

    snap = orchestrator.snapshot()
    counts: dict[str, int] = {}
    for item in snap.items:
        counts[item.status] = counts.get(item.status, 0) + 1
    summary = ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
    print(f"Finished {snap.completed}/{snap.total}: {summary}")
    print(f"Output: {services.config.output_root}")
    return 1 if counts.get(ItemStatus.FAILED) else 0


# ── Commands ──────────────────────────────────────────────────────────

def cmd_summarize(args, services: Services) -> int:
    bvids = parse_input_lines("\n".join(args.inputs))
    if args.file:
        for bvid in parse_input_file(args.file):
            if bvid not in bvids:
                bvids.append(bvid)
    dest = FAVORITES_SUBDIR if args.favorites else STANDALONE_SUBDIR
    return _run_batch(services, bvids, dest)


def cmd_user(args, services: Services) -> int:
    credential = services.config.credential_from_env()
    info = services.api.get_user_info(args.uid, credential)
    print(f"{info.name} (uid {info.mid})")
    services.store.save_user_meta(args.uid, info.name)
    bvids = services.api.get_all_user_bvids(args.uid, args.count, credential)
    return _run_batch(services, bvids, users_subdir(args.uid))


def cmd_favorites(args, services: Services) -> int:
    credential = services.config.credential_from_env()
    bvids = services.api.get_default_favorite_bvids(args.count, credential)
    return _run_batch(services, bvids, FAVORITES_SUBDIR)


def cmd_folders(args, services: Services) -> int:
    credential = services.config.credential_from_env()
    uid = args.uid or services.api.get_self_info(credential).mid
    folders = services.api.get_favorite_folders(uid, credential)
    for folder in folders:
        default = " (default)" if folder.is_default else ""
        print(f"{folder.id}\t{folder.media_count}\t{folder.title}{default}")
    if args.list is not None:
        folder_id = args.list
        videos, has_more = services.api.get_favorite_videos(folder_id, credential=credential)
        for v in videos:
            print(f"  {v.bvid}\t{v.upper_name}\t{v.title}")
        if has_more:
            print("  ...")
    return 0


def cmd_unfavorite(args, services: Services) -> int:
    bvid = validate_bvid(args.bvid)
    credential = services.config.credential_from_env()
    folder_id = args.folder
    if folder_id is None:
        me = services.api.get_self_info(credential)
        folders = services.api.get_favorite_folders(me.mid, credential)
        default = next((f for f in folders if f.is_default), folders[0] if folders else None)
        if default is None:
            print("No favorite folders found.")
            return 1
        folder_id = default.id
    services.api.unfavorite_video(bvid, folder_id, credential)
    print(f"Removed {bvid} from folder {folder_id}")
    return 0


def cmd_models(args, services: Services) -> int:
    models = services.summarizer.list_models()
    if not models:
        print("No models reported by the provider.")
        return 1
    for m in models:
        print(f"{m.id}\t{m.owned_by}")
    return 0


def cmd_diagnose(args, services: Services) -> int:
    print(json.dumps(get_diagnostics(services.config), indent=2, ensure_ascii=False))
    return 0


def cmd_config(args, services: Services) -> int:
    config = services.config
    if args.action == "set":
        if args.key is None or args.value is None:
            print("usage: bilisummary config set KEY VALUE")
            return 2
        config.set(args.key, args.value)
    print(json.dumps(config.as_dict(redact=True), indent=2, ensure_ascii=False))
    return 0


# ── Entry point ───────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bilisummary",
                                     description=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr too")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("summarize", help="summarize videos by URL or BV id")
    p.add_argument("inputs", nargs="*", help="video URLs or BV ids")
    p.add_argument("-f", "--file", help=".txt or .csv file with URLs / BV ids")
    p.add_argument("--favorites", action="store_true", help="file under favorites/")
    p.set_defaults(func=cmd_summarize)

    p = sub.add_parser("user", help="summarize a user's latest uploads")
    p.add_argument("uid", type=int)
    p.add_argument("-n", "--count", type=int, default=10)
    p.set_defaults(func=cmd_user)

    p = sub.add_parser("favorites", help="summarize the default favorite folder")
    p.add_argument("-n", "--count", type=int, default=20)
    p.set_defaults(func=cmd_favorites)

    p = sub.add_parser("folders", help="list favorite folders")
    p.add_argument("--uid", type=int, default=None)
    p.add_argument("--list", type=int, default=None, metavar="FOLDER_ID",
                   help="also list the first page of a folder")
    p.set_defaults(func=cmd_folders)

    p = sub.add_parser("unfavorite", help="remove a video from a favorite folder")
    p.add_argument("bvid", help="video URL or BV id")
    p.add_argument("--folder", type=int, default=None)
    p.set_defaults(func=cmd_unfavorite)

    p = sub.add_parser("models", help="list models offered by the AI endpoint")
    p.set_defaults(func=cmd_models)

    p = sub.add_parser("diagnose", help="show tool versions and configuration state")
    p.set_defaults(func=cmd_diagnose)

    p = sub.add_parser("config", help="show or change settings")
    p.add_argument("action", choices=["show", "set"])
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?")
    p.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    logger.info("%s %s starting at %s (command=%s)",
                APP_NAME, APP_VERSION, datetime.now().isoformat(), args.command)

    services = build_services(AppConfig())
    try:
        return args.func(args, services)
    except PipelineError as e:
        logger.error("Command %s failed: %s", args.command, e)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.error("Command %s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
