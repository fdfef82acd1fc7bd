# LocalSafe: Command Line Interface
#
# Thin orchestration around VaultManager:
# - parse flags into typed operation parameters
# - prompt for passphrases / confirmation tokens only when missing and a TTY exists
# - print the operation's message and record an audit event after success

import argparse
import json
import logging
import shlex
import sys
from typing import Callable, List, Optional, TextIO

from . import __version__
from .core import AuditEvent, AuditLogger, ConfigError, LocalSafeConfig, get_audit_logger, load_config
from .prompts import Prompter, PromptUnavailable
from .vault import EncryptionService, ErrorCode, FileVaultStore, OperationResult, Selector, VaultManager
from .vault.models import TrashAction
from .vault.params import (
    CONFIRM_DELETE,
    CONFIRM_EXPORT,
    CONFIRM_PURGE,
    CONFIRM_RESTORE,
    AddParams,
    DeleteParams,
    ExportParams,
    ListParams,
    PurgeParams,
    RestoreParams,
    TagParams,
    TrashListParams,
    UpdateParams,
    VerifyParams,
    ViewParams,
)
from .vault.retention import Clock, run_startup_retention
from .vault.store import VaultStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

SHELL_PROMPT = "localsafe> "
STARTUP_ONLY_OPTIONS = ("--config", "--vault")


class _ArgumentParser(argparse.ArgumentParser):
    """Parser whose usage errors can be caught inside the interactive shell."""

    def error(self, message):
        self.print_usage(sys.stderr)
        raise SystemExit(f"{self.prog}: error: {message}")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="localsafe",
        description="LocalSafe - file-backed credential vault with passphrase-derived encryption",
        epilog="Run without a command to start the interactive shell.",
    )
    parser.add_argument("--config", help="Path to JSON config file")
    parser.add_argument("--vault", help="Vault file (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"LocalSafe v{__version__}")

    sub = parser.add_subparsers(dest="command", parser_class=_ArgumentParser)

    sub.add_parser("status", help="Show vault location and entry count")
    sub.add_parser("init", help="Create a new vault file if missing")
    sub.add_parser("help", help="Show this help output")

    add = sub.add_parser("add", help="Add a credential entry")
    add.add_argument("--name")
    add.add_argument("--username", default="")
    add.add_argument("--url", default="")
    add.add_argument("--secret")
    add.add_argument("--note", default="")
    add.add_argument("--tags", "--tag", dest="tags")
    add.add_argument("--passphrase")

    lst = sub.add_parser("list", help="Show entry metadata without decrypting secrets")
    lst.add_argument("--tag", "--tags", dest="tag")
    lst.add_argument("--domain")

    view = sub.add_parser("view", help="View a decrypted entry")
    view.add_argument("--id")
    view.add_argument("--name")
    view.add_argument("--passphrase")

    export = sub.add_parser("export", help="Export vault data (default stdout)")
    export.add_argument("--format", default="json")
    export.add_argument("--pretty", action="store_true")
    export.add_argument("--dest")
    export.add_argument("--confirm")

    tag = sub.add_parser("tag", help="Replace tags for an entry")
    tag.add_argument("--id")
    tag.add_argument("--name")
    tag.add_argument("--tags", "--tag", dest="tags")

    update = sub.add_parser("update", help="Modify metadata or secrets for an entry")
    update.add_argument("--id")
    update.add_argument("--name", help="Select the entry by name")
    update.add_argument("--new-name", dest="new_name")
    update.add_argument("--username")
    update.add_argument("--url")
    update.add_argument("--tags", "--tag", dest="tags")
    update.add_argument("--secret")
    update.add_argument("--note")
    update.add_argument("--passphrase")
    update.add_argument(
        "--new-passphrase", dest="new_passphrase", nargs="?", const="",
        help="Rotate the entry passphrase (prompts when no value is given)",
    )

    delete = sub.add_parser("delete", help="Remove entries by id/name/tag/domain")
    delete.add_argument("--id")
    delete.add_argument("--name")
    delete.add_argument("--tag")
    delete.add_argument("--domain")
    delete.add_argument("--soft", action="store_true", help="Move to trash without confirmation")
    delete.add_argument("--confirm")

    verify = sub.add_parser("verify", help="Check integrity digests")
    verify.add_argument("--fix", action="store_true", help="Re-stamp missing or mismatched digests")

    trash = sub.add_parser("trash", help="Manage archived entries")
    trash_sub = trash.add_subparsers(dest="trash_action", parser_class=_ArgumentParser)
    trash_list = trash_sub.add_parser("list")
    trash_list.add_argument("--action", choices=[a.value for a in TrashAction])
    trash_list.add_argument("--name")
    restore = trash_sub.add_parser("restore")
    restore.add_argument("--id")
    restore.add_argument("--name")
    restore.add_argument("--confirm")
    purge = trash_sub.add_parser("purge")
    purge.add_argument("--before", help="ISO date cutoff")
    purge.add_argument("--older-than", dest="older_than", help="Relative cutoff such as 7d or 12h")
    purge.add_argument("--confirm")

    return parser


class LocalSafeCLI:
    """
    Dispatches parsed commands to a VaultManager.

    Args:
        manager: Vault lifecycle operations
        audit: Activity log sink
        prompter: Terminal prompter (only used when a value is missing)
        stdout/stderr: Output streams
    """

    def __init__(
        self,
        manager: VaultManager,
        audit: AuditLogger,
        prompter: Optional[Prompter] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        stdin: Optional[TextIO] = None,
    ):
        self.manager = manager
        self.audit = audit
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.stdin = stdin or sys.stdin
        self.prompter = prompter or Prompter(stdin=self.stdin, stdout=self.stdout)
        self.parser = build_parser()

    # ── Output helpers ───────────────────────────────────────────

    def _out(self, text: str) -> None:
        self.stdout.write(f"{text}\n")

    def _err(self, text: str) -> None:
        self.stderr.write(f"{text}\n")

    def _report(self, result: OperationResult) -> int:
        """Print a result message; failures go to stderr."""
        if result.ok or result.error is None:
            self._out(result.message)
            return EXIT_OK
        self._err(result.message)
        return EXIT_FAILURE

    # ── Prompting helpers ────────────────────────────────────────

    def _ensure_passphrase(self, current: Optional[str], prompt: str = "Passphrase: ") -> Optional[str]:
        if current:
            return current
        try:
            answer = self.prompter.ask_secret(prompt)
        except (PromptUnavailable, EOFError) as exc:
            self._err(str(exc))
            return None
        if not answer:
            self._err("Passphrase cannot be empty.")
            return None
        return answer

    def _confirmed(
        self,
        run: Callable[[Optional[str]], OperationResult],
        confirm: Optional[str],
        token: str,
        prompt: str,
    ) -> OperationResult:
        """
        Run a gated operation; when it reports a pending confirmation, ask for
        the token once and re-run with it.
        """
        result = run(confirm)
        if result.error != ErrorCode.CONFIRMATION_REQUIRED:
            return result

        count = result.pending or 0
        try:
            answer = self.prompter.ask_line(f"{count} {'entry' if count == 1 else 'entries'} affected. {prompt}")
        except (PromptUnavailable, EOFError):
            return result
        if answer != token:
            return OperationResult(
                ok=False,
                message=f"Confirmation mismatch. Expected '{token}'.",
                error=ErrorCode.CONFIRMATION_REQUIRED,
                pending=result.pending,
            )
        return run(token)

    # ── Commands ─────────────────────────────────────────────────

    def cmd_help(self, args) -> int:
        self.parser.print_help(self.stdout)
        return EXIT_OK

    def cmd_status(self, args) -> int:
        result = self.manager.status()
        code = self._report(result)
        self._out(f"Audit log target • {self.audit.log_path}")
        total, _ = self.audit.recent(limit=0)
        if total:
            self._out(f"Audit log contains {total} event{'' if total == 1 else 's'}")
        return code

    def cmd_init(self, args) -> int:
        return self._report(self.manager.initialize())

    def cmd_add(self, args) -> int:
        passphrase = self._ensure_passphrase(args.passphrase, "Vault passphrase: ")
        if passphrase is None:
            return EXIT_FAILURE

        result = self.manager.add(AddParams(
            passphrase=passphrase,
            secret=args.secret,
            name=args.name,
            username=args.username,
            url=args.url,
            note=args.note,
            tags=args.tags,
        ))
        if result.ok:
            entry = result.value
            self.audit.record(AuditEvent.ADD_ENTRY, {"id": entry.id, "name": entry.name, "tags": list(entry.tags)})
        return self._report(result)

    def cmd_list(self, args) -> int:
        result = self.manager.list_entries(ListParams(tag=args.tag, domain=args.domain))
        if not result.ok or not result.value:
            return self._report(result)

        rows = [row.to_dict() for row in result.value]
        header = ["#", "Name", "Username", "URL", "Domain", "Tags", "Updated"]
        keys = ["index", "name", "username", "url", "domain", "tags", "updatedAt"]
        widths = [
            max([len(header[i])] + [len(str(row[key])) for row in rows])
            for i, key in enumerate(keys)
        ]
        self._out("  ".join(h.ljust(w) for h, w in zip(header, widths)).rstrip())
        self._out("  ".join("-" * w for w in widths))
        for row in rows:
            self._out("  ".join(str(row[key]).ljust(w) for key, w in zip(keys, widths)).rstrip())
        return EXIT_OK

    def cmd_view(self, args) -> int:
        passphrase = self._ensure_passphrase(args.passphrase)
        if passphrase is None:
            return EXIT_FAILURE

        result = self.manager.view(ViewParams(selector=Selector(id=args.id, name=args.name), passphrase=passphrase))
        if not result.ok:
            return self._report(result)

        shown = result.value
        self._out(json.dumps(shown, indent=2, ensure_ascii=False))
        self.audit.record(AuditEvent.VIEW_ENTRY, {"id": shown["id"], "name": shown["name"], "tags": shown["tags"]})
        return EXIT_OK

    def cmd_export(self, args) -> int:
        params = ExportParams(format=args.format, pretty=args.pretty, dest=args.dest)
        if not args.dest and args.confirm != CONFIRM_EXPORT:
            try:
                answer = self.prompter.ask_line("Type 'export' to stream the vault to stdout: ")
            except (PromptUnavailable, EOFError) as exc:
                self._err(str(exc))
                return EXIT_FAILURE
            if answer != CONFIRM_EXPORT:
                self._err(f"Confirmation mismatch. Expected '{CONFIRM_EXPORT}'.")
                return EXIT_FAILURE

        result = self.manager.export(params)
        if not result.ok:
            return self._report(result)

        outcome = result.value
        if outcome.content is not None:
            self._out(outcome.content)
        else:
            self._out(result.message)
        self.audit.record(AuditEvent.EXPORT_VAULT, {"destination": outcome.destination, "format": outcome.format})
        return EXIT_OK

    def cmd_tag(self, args) -> int:
        result = self.manager.tag(TagParams(selector=Selector(id=args.id, name=args.name), tags=args.tags))
        if result.ok:
            entry = result.value
            self.audit.record(AuditEvent.UPDATE_TAGS, {"id": entry.id, "name": entry.name, "tags": list(entry.tags)})
        return self._report(result)

    def cmd_update(self, args) -> int:
        wants_rotation = args.new_passphrase is not None
        passphrase = args.passphrase
        if (args.secret is not None or args.note is not None or wants_rotation) and not passphrase:
            passphrase = self._ensure_passphrase(None, "Passphrase: ")
            if passphrase is None:
                return EXIT_FAILURE

        new_passphrase = args.new_passphrase
        if wants_rotation and not new_passphrase:
            new_passphrase = self._ensure_passphrase(None, "New passphrase: ")
            if new_passphrase is None:
                return EXIT_FAILURE

        result = self.manager.update(UpdateParams(
            selector=Selector(id=args.id, name=args.name),
            new_name=args.new_name,
            username=args.username,
            url=args.url,
            tags=args.tags,
            secret=args.secret,
            note=args.note,
            passphrase=passphrase,
            new_passphrase=new_passphrase,
        ))
        if result.ok:
            entry = result.value
            self.audit.record(AuditEvent.UPDATE_ENTRY, {
                "id": entry.id,
                "name": entry.name,
                "tags": list(entry.tags),
                "rotated": wants_rotation,
            })
        return self._report(result)

    def cmd_delete(self, args) -> int:
        selector = Selector(id=args.id, name=args.name, tag=args.tag, domain=args.domain)
        result = self._confirmed(
            lambda confirm: self.manager.delete(DeleteParams(selector=selector, soft=args.soft, confirm=confirm)),
            args.confirm,
            CONFIRM_DELETE,
            "Type 'delete' to confirm removal: ",
        )
        if result.ok:
            for entry in result.value.entries:
                self.audit.record(AuditEvent.DELETE_ENTRY, {
                    "id": entry.id,
                    "name": entry.name,
                    "tags": list(entry.tags),
                    "softDelete": result.value.soft_delete,
                })
        return self._report(result)

    def cmd_verify(self, args) -> int:
        result = self.manager.verify(VerifyParams(fix=args.fix))
        code = self._report(result)
        if result.ok:
            report = result.value
            self.audit.record(AuditEvent.VERIFY_VAULT, {
                "checked": report.checked,
                "mismatches": len(report.mismatches),
                "fixed": report.fixed,
            })
            if not report.ok and not report.fixed:
                return EXIT_FAILURE
        return code

    def cmd_trash(self, args) -> int:
        action = args.trash_action
        if action == "list":
            return self._trash_list(args)
        if action == "restore":
            return self._trash_restore(args)
        if action == "purge":
            return self._trash_purge(args)
        self._out("Usage: localsafe trash <list|restore|purge> [options]")
        return EXIT_FAILURE

    def _trash_list(self, args) -> int:
        action = TrashAction(args.action) if args.action else None
        result = self.manager.list_trash(TrashListParams(action=action, name=args.name))
        if not result.ok:
            return self._report(result)
        if not result.value:
            self._out(result.message)
        for index, record in enumerate(result.value, start=1):
            self._out(
                f"{index}. action={record.action.value} name={record.entry.name} "
                f"id={record.entry.id} archived={record.timestamp}"
            )
        self.audit.record(AuditEvent.TRASH_LIST, {"count": len(result.value)})
        return EXIT_OK

    def _trash_restore(self, args) -> int:
        selector = Selector(id=args.id, name=args.name)
        result = self._confirmed(
            lambda confirm: self.manager.restore(RestoreParams(selector=selector, confirm=confirm)),
            args.confirm,
            CONFIRM_RESTORE,
            "Type 'restore' to confirm undeleting: ",
        )
        if result.ok:
            self.audit.record(AuditEvent.TRASH_RESTORE, {"id": result.value.id, "name": result.value.name})
        return self._report(result)

    def _trash_purge(self, args) -> int:
        result = self._confirmed(
            lambda confirm: self.manager.purge(
                PurgeParams(before=args.before, older_than=args.older_than, confirm=confirm)
            ),
            args.confirm,
            CONFIRM_PURGE,
            "Type 'purge' to empty trash: ",
        )
        if result.ok and result.value:
            self.audit.record(AuditEvent.TRASH_PURGE, {"count": len(result.value)})
        return self._report(result)

    # ── Dispatch ─────────────────────────────────────────────────

    def dispatch(self, args: argparse.Namespace) -> int:
        command = args.command or "help"
        handler = getattr(self, f"cmd_{command}", None)
        if handler is None:
            self._out(f"Unknown command: {command}")
            self._out("Run `localsafe help` for a full list of commands.")
            return EXIT_FAILURE
        logger.debug("Dispatching command %s", command)
        return handler(args)

    def run(self, argv: List[str]) -> int:
        if not argv:
            return self.interactive()
        try:
            args = self.parser.parse_args(argv)
        except SystemExit as exc:
            if isinstance(exc.code, int):
                return exc.code
            if exc.code:
                self._err(str(exc.code))
            return EXIT_FAILURE
        if args.command is None:
            return self.interactive()
        return self.dispatch(args)

    def interactive(self) -> int:
        """Read commands line by line until ``exit`` or end of input."""
        self._out("LocalSafe shell ready. Type `help` for commands, `exit` to quit.")
        while True:
            self.stdout.write(SHELL_PROMPT)
            self.stdout.flush()
            line = self.stdin.readline()
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            if line == "exit":
                break
            try:
                tokens = shlex.split(line)
            except ValueError as exc:
                self._err(f"Unable to parse command: {exc}")
                continue
            startup_only = [t.split("=", 1)[0] for t in tokens if t.split("=", 1)[0] in STARTUP_ONLY_OPTIONS]
            if startup_only:
                self._err(
                    f"{startup_only[0]} only applies when starting localsafe. "
                    "Restart the shell with it to switch vaults or config."
                )
                continue
            try:
                args = self.parser.parse_args(tokens)
            except SystemExit as exc:
                if exc.code not in (None, 0):
                    self._err(str(exc.code))
                continue
            self.dispatch(args)
        return EXIT_OK


def bootstrap(
    config: Optional[LocalSafeConfig] = None,
    store: Optional[VaultStore] = None,
    crypto: Optional[EncryptionService] = None,
    audit: Optional[AuditLogger] = None,
    clock: Optional[Clock] = None,
    prompter: Optional[Prompter] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    stdin: Optional[TextIO] = None,
) -> LocalSafeCLI:
    """
    Wire collaborators from configuration and run the startup retention pass.

    Any collaborator passed explicitly replaces the configured one.
    """
    config = config or load_config()
    store = store or FileVaultStore(config.paths.vault, optimistic=config.storage.optimistic_locking)
    crypto = crypto or EncryptionService(
        algorithm=config.crypto.algorithm,
        iterations=config.crypto.iterations,
        key_size=config.crypto.key_size,
    )
    audit = audit or get_audit_logger(config.paths.audit_log)
    manager = VaultManager(store, crypto=crypto, clock=clock)

    run_startup_retention(manager, config.retention.trash_older_than)

    return LocalSafeCLI(manager, audit, prompter=prompter, stdout=stdout, stderr=stderr, stdin=stdin)


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    # Global options are read up front so config applies to the shell as well
    bootstrap_parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    bootstrap_parser.add_argument("--config")
    bootstrap_parser.add_argument("--vault")
    bootstrap_parser.add_argument("-v", "--verbose", action="store_true")
    options, _ = bootstrap_parser.parse_known_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if options.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides = {"paths": {"vault": options.vault}} if options.vault else None
    try:
        config = load_config(options.config, overrides=overrides)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG

    try:
        cli = bootstrap(config)
        return cli.run(argv)
    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
