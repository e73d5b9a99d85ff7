#!/usr/bin/env python
import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from talonlang import (
    PersistenceManager,
    PredefinedPolicy,
    Runtime,
    RuntimeConfig,
    TalonError,
    TalonFile,
    load_predefined_file,
    load_rule_files,
)
from talonlang.log import configure_logging

EXIT_ALLOW = 0
EXIT_DENY = 1
EXIT_ERROR = 2


def _read_context(path):
    if path is None:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _rule_files(targets):
    files = []
    for target in targets:
        p = Path(target)
        if p.is_dir():
            files.extend(load_rule_files(p))
        else:
            files.append(TalonFile.read_from_file(p))
    return files


def _build_runtime(args) -> Runtime:
    config = RuntimeConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level.upper()
    if args.skip_failed_predefined:
        config.predefined_policy = PredefinedPolicy.SKIP
    configure_logging(config.log_level)
    rt = Runtime(config)
    if args.restore:
        manager = PersistenceManager(config.state_dir)
        path = manager.get_latest_state(args.restore)
        if path is None:
            raise TalonError(f"no saved state named {args.restore} in {config.state_dir}")
        manager.restore(rt.store, manager.load_state(path))
    if args.predefined_variables:
        rt.load_predefined(load_predefined_file(args.predefined_variables))
    return rt


def _save(rt: Runtime, args):
    if args.save:
        PersistenceManager(rt.config.state_dir).save_state(args.save, rt.store)


def _cmd_eval(rt: Runtime, args) -> int:
    rule = Path(args.rule[1:]).read_text(encoding="utf-8") if args.rule.startswith("@") else args.rule
    context = _read_context(args.context)
    if args.value:
        value = rt.evaluate_value(rule, context)
        print(repr(value))
        return EXIT_ALLOW
    result = rt.evaluate(rule, context)
    print(result.model_dump_json())
    if result.failed:
        return EXIT_ERROR
    return EXIT_ALLOW if result.decision else EXIT_DENY


def _cmd_check(rt: Runtime, args) -> int:
    files = _rule_files(args.rules)
    verdict = rt.evaluate_event(args.event, _read_context(args.context), files)
    if not verdict.verdicts:
        print(f"No rule file subscribes to {args.event}")
        return EXIT_ALLOW
    for v in verdict.verdicts:
        if v.result.failed:
            print(f"  {v.name}: error {v.result.error.kind}: {v.result.error.message}")
        else:
            print(f"  {v.name}: {'allow' if v.result.decision else 'deny'}")
    if verdict.allowed:
        print("Allow")
        return EXIT_ALLOW
    print("Deny: " + " AND ".join(verdict.denied + list(verdict.errored)))
    return EXIT_ERROR if verdict.errored else EXIT_DENY


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="TALON CLI - authorization rules for blockchain events")
    parser.add_argument("--predefined-variables", help="JSON file holding an array of statements run at startup")
    parser.add_argument("--skip-failed-predefined", action="store_true",
                        help="Log and skip failing predefined statements instead of aborting")
    parser.add_argument("--log-level", help="Log level (overrides TALON_LOG_LEVEL)")
    parser.add_argument("--restore", metavar="NAME", help="Restore the newest saved state with this name")
    parser.add_argument("--save", metavar="NAME", help="Save the persistent state under this name on exit")
    subparsers = parser.add_subparsers(dest="command")

    eval_parser = subparsers.add_parser("eval", help="Evaluate a rule against one event context")
    eval_parser.add_argument("rule", help="Rule text, or @path to read it from a file")
    eval_parser.add_argument("--context", help="JSON file with the event context")
    eval_parser.add_argument("--value", action="store_true", help="Print the last statement's value")

    check_parser = subparsers.add_parser("check", help="Check an event against .talon rule files")
    check_parser.add_argument("rules", nargs="+", help=".talon files or directories holding them")
    check_parser.add_argument("--event", required=True, help="Event signature or name")
    check_parser.add_argument("--context", help="JSON file with the event context")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return EXIT_ERROR
    try:
        rt = _build_runtime(args)
        if args.command == "eval":
            code = _cmd_eval(rt, args)
        else:
            code = _cmd_check(rt, args)
        _save(rt, args)
    except (TalonError, OSError, json.JSONDecodeError) as e:
        logger.error("{}", e)
        print(f"[Error] {e}")
        return EXIT_ERROR
    return code


if __name__ == "__main__":
    sys.exit(main())
