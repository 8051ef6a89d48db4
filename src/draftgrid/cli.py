from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import Settings, load_settings, write_settings
from .errors import DraftGridError, PersistenceWarning
from .gateway import HttpCollectionGateway
from .kvstore import store_for_path
from .paths import presets_file, settings_file, user_cache_dir, user_config_dir, user_data_dir
from .presets import PresetStore, ViewPreset


def _settings(args: argparse.Namespace) -> Settings:
    return load_settings(args.settings)


def _presets(args: argparse.Namespace) -> PresetStore:
    path = args.presets_file or _settings(args).presets_path()
    return PresetStore(store_for_path(path), view=args.view)


def _split(text: str | None) -> list[str]:
    if not text:
        return []
    return [p.strip() for p in text.split(",") if p.strip()]


def _print_preset(preset: ViewPreset, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps({"name": preset.name, **preset.to_dict()}))
        return
    print(f"{preset.name}:")
    for name in preset.field_order:
        mark = "x" if preset.visibility.get(name, True) else " "
        print(f"  [{mark}] {name}")


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


def show_paths(args: argparse.Namespace) -> int:
    data = {
        "user_config": user_config_dir(),
        "user_data": user_data_dir(),
        "user_cache": user_cache_dir(),
        "settings_file": settings_file(),
        "presets_file": presets_file(),
    }
    if args.as_json:
        print(json.dumps({k: str(v) for k, v in data.items()}))
    else:
        for k, v in data.items():
            print(f"{k}: {v}")
    return 0


def config_show(args: argparse.Namespace) -> int:
    settings = _settings(args)
    data = {
        "api_url": settings.api_url,
        "token": "*" * 8 if settings.token else None,
        "timeout": settings.timeout,
        "presets_file": str(settings.presets_path()),
        "commit_policy": settings.commit_policy,
    }
    if args.as_json:
        print(json.dumps(data))
    else:
        for k, v in data.items():
            print(f"{k} = {v}")
    return 0


def config_init(args: argparse.Namespace) -> int:
    settings = Settings(
        api_url=args.api_url,
        timeout=args.timeout,
        commit_policy=args.commit_policy,
    )
    path = write_settings(settings, args.settings)
    print(str(path))
    return 0


# ---------------------------------------------------------------------------
# Preset commands
# ---------------------------------------------------------------------------


def presets_list(args: argparse.Namespace) -> int:
    store = _presets(args)
    names = store.names()
    if args.as_json:
        print(json.dumps({"active": store.active_name, "presets": names}))
        return 0
    for name in names:
        marker = "*" if name == store.active_name else " "
        print(f"{marker} {name}")
    return 0


def presets_show(args: argparse.Namespace) -> int:
    _print_preset(_presets(args).get(args.name), as_json=args.as_json)
    return 0


def presets_create(args: argparse.Namespace) -> int:
    order = _split(args.fields)
    hidden = set(_split(args.hidden))
    visibility = {name: name not in hidden for name in order}
    preset = _presets(args).create_preset(args.name, order, visibility)
    _print_preset(preset, as_json=args.as_json)
    return 0


def presets_apply(args: argparse.Namespace) -> int:
    preset = _presets(args).apply_preset(args.name)
    _print_preset(preset, as_json=args.as_json)
    return 0


def presets_rename(args: argparse.Namespace) -> int:
    _presets(args).rename_preset(args.old, args.new)
    return 0


def presets_delete(args: argparse.Namespace) -> int:
    _presets(args).delete_preset(args.name)
    return 0


# ---------------------------------------------------------------------------
# Remote commands
# ---------------------------------------------------------------------------


def fetch_cmd(args: argparse.Namespace) -> int:
    settings = _settings(args)
    gateway = HttpCollectionGateway(
        settings.api_url, args.resource, token=settings.token, timeout=settings.timeout
    )
    records = gateway.fetch_all()
    wanted = _split(args.fields)
    if wanted:
        records = [{k: rec.get(k) for k in ["id", *wanted]} for rec in records]
    print(json.dumps(records, indent=2, ensure_ascii=False, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="draftgrid", description="Manage grid presets and inspect collections."
    )
    parser.add_argument("--settings", type=Path, default=None, help="Settings INI file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # paths command
    p_paths = subparsers.add_parser("paths", help="Show draftgrid paths.")
    p_paths.add_argument("--json", dest="as_json", action="store_true")
    p_paths.set_defaults(func=show_paths)

    # config group
    p_config = subparsers.add_parser("config", help="Manage draftgrid settings.")
    sp_config = p_config.add_subparsers(dest="config_cmd", required=True)

    p_cfg_show = sp_config.add_parser("show", help="Show effective settings")
    p_cfg_show.add_argument("--json", dest="as_json", action="store_true")
    p_cfg_show.set_defaults(func=config_show)

    p_cfg_init = sp_config.add_parser("init", help="Write a settings file")
    p_cfg_init.add_argument("--api-url", default=Settings.api_url)
    p_cfg_init.add_argument("--timeout", type=float, default=Settings.timeout)
    p_cfg_init.add_argument(
        "--commit-policy", choices=("fail_fast", "continue"), default="fail_fast"
    )
    p_cfg_init.set_defaults(func=config_init)

    # presets group
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--view", default="default", help="Grid view name")
    common.add_argument("--presets-file", type=Path, default=None)
    common.add_argument("--json", dest="as_json", action="store_true")
    p_presets = subparsers.add_parser("presets", help="Manage view presets.")
    sp_presets = p_presets.add_subparsers(dest="presets_cmd", required=True)

    p_pl = sp_presets.add_parser("list", parents=[common], help="List presets")
    p_pl.set_defaults(func=presets_list)

    p_ps = sp_presets.add_parser("show", parents=[common], help="Show a preset")
    p_ps.add_argument("name")
    p_ps.set_defaults(func=presets_show)

    p_pc = sp_presets.add_parser("create", parents=[common], help="Create a preset")
    p_pc.add_argument("name")
    p_pc.add_argument("--fields", required=True, help="Comma separated field order")
    p_pc.add_argument("--hidden", default="", help="Comma separated hidden fields")
    p_pc.set_defaults(func=presets_create)

    p_pa = sp_presets.add_parser("apply", parents=[common], help="Make a preset the active layout")
    p_pa.add_argument("name")
    p_pa.set_defaults(func=presets_apply)

    p_pr = sp_presets.add_parser("rename", parents=[common], help="Rename a preset")
    p_pr.add_argument("old")
    p_pr.add_argument("new")
    p_pr.set_defaults(func=presets_rename)

    p_pd = sp_presets.add_parser("delete", parents=[common], help="Delete a preset")
    p_pd.add_argument("name")
    p_pd.set_defaults(func=presets_delete)

    # fetch command
    p_fetch = subparsers.add_parser("fetch", help="Print a remote collection as JSON.")
    p_fetch.add_argument("resource", help="Collection path, e.g. users")
    p_fetch.add_argument("--fields", default="", help="Comma separated fields to keep")
    p_fetch.set_defaults(func=fetch_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 1
    try:
        return int(func(args))
    except PersistenceWarning as exc:
        print(f"warning: {exc}", file=sys.stderr)
        return 1
    except DraftGridError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except SystemExit as exc:  # pragma: no cover - argparse may raise
        return int(exc.code)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
