"""
cli.py: command line front end for a Keybox vault.

Subcommands:
- add-uri / add-token / codes / hotp      : OTP tokens
- add-account / accounts / show-password  : password vault
- delete-token / delete-account           : soft delete (goes to trash)
- trash / restore                         : undo
- activity                                : activity feed
- sync enable|disable|now|restore         : cloud sync
- generate password|secret                : random generators

Storage and sync backends come from KEYBOX_* environment variables.
"""

from __future__ import annotations
import argparse
import asyncio
import sys

from . import generator, otp
from .config import KeyboxConfig
from .models import AccountCategory
from .sync import inline_dispatch
from .vault import Keybox


class ConsoleAuthorizer:
    """Asks for a y/N confirmation on the terminal."""

    async def authorize(self, reason: str) -> bool:
        answer = await asyncio.to_thread(input, f"{reason} [y/N] ")
        return answer.strip().lower() in ("y", "yes")


def open_vault(args) -> Keybox:
    return Keybox.from_config(KeyboxConfig.from_env(), authorizer=ConsoleAuthorizer(),
                              dispatch=inline_dispatch)


# --- CLI command handlers ---
def cmd_add_uri(args):
    kb = open_vault(args)
    token, error = kb.add_token_from_uri(args.uri)
    if token is None:
        print(f"[!] {error}")
        return 1
    print(f"[+] Added {token.issuer} ({token.account_name}) id={token.id}")


def cmd_add_token(args):
    kb = open_vault(args)
    token = kb.tokens.add_token(args.issuer, args.account, args.secret,
                                period=args.period, digits=args.digits)
    if token is None:
        print("[!] Secret is not valid Base32, or digits/period out of range")
        return 1
    print(f"[+] Added {token.issuer} ({token.account_name}) id={token.id}")


def cmd_codes(args):
    kb = open_vault(args)
    for view in kb.codes(args.search or ""):
        remaining = view.token.seconds_remaining(kb.clock)
        print(f"{view.code}  {remaining:2d}s  {view.token.issuer} ({view.token.account_name})  {view.token.id}")


def cmd_hotp(args):
    try:
        code = otp.generate_hotp_code(args.secret, args.counter, args.digits)
    except ValueError as e:
        print(f"[!] {e}")
        return 1
    if code is None:
        print("[!] Secret is not valid Base32")
        return 1
    print(f"HOTP({args.digits}d, counter={args.counter}): {code}")


def cmd_add_account(args):
    kb = open_vault(args)
    entry = kb.accounts.add_account(args.title, args.account, args.password,
                                    note=args.note, category=AccountCategory(args.category))
    print(f"[+] Added {entry.title} id={entry.id}")


def cmd_accounts(args):
    kb = open_vault(args)
    category = AccountCategory(args.category) if args.category else None
    for entry in kb.accounts.by_category(category, args.search or ""):
        print(f"{entry.id}  [{entry.category.value}] {entry.title} ({entry.account})")


def cmd_show_password(args):
    kb = open_vault(args)
    password = asyncio.run(kb.reveal_password(args.id))
    if password is None:
        print("[-] Not authorized or unknown account")
        return 1
    print(password)


def cmd_delete_token(args):
    kb = open_vault(args)
    trash_id = kb.tokens.delete(args.id)
    if trash_id is None:
        print("[-] Unknown token")
        return 1
    print(f"[+] Moved to trash as {trash_id}")


def cmd_delete_account(args):
    kb = open_vault(args)
    trash_id = asyncio.run(kb.delete_account(args.id))
    if trash_id is None:
        print("[-] Not authorized or unknown account")
        return 1
    print(f"[+] Moved to trash as {trash_id}")


def cmd_trash(args):
    kb = open_vault(args)
    for entry in kb.trash.entries():
        r = entry.record
        label = f"{r.issuer} ({r.account_name})" if entry.kind == "token" else f"{r.title} ({r.account})"
        print(f"{entry.id}  {entry.deleted_at:%Y-%m-%d %H:%M}  {entry.kind:7s} {label}")


def cmd_restore(args):
    kb = open_vault(args)
    record = asyncio.run(kb.restore(args.trash_id))
    if record is None:
        print("[-] Nothing to restore")
        return 1
    print(f"[+] Restored {record.id}")


def cmd_activity(args):
    kb = open_vault(args)
    for event in kb.activity.events[: args.limit]:
        mark = " " if event.is_read else "*"
        print(f"{mark} {event.date:%Y-%m-%d %H:%M} {event.type.value:8s} {event.title}: {event.message}")
    if args.mark_read:
        kb.activity.mark_all_read()


def cmd_sync(args):
    kb = open_vault(args)
    if args.action == "enable":
        ok = asyncio.run(kb.set_sync_enabled(True))
    elif args.action == "disable":
        ok = asyncio.run(kb.set_sync_enabled(False))
    elif args.action == "now":
        kb.sync.force_sync()
        ok = True
    else:
        kb.sync.force_restore()
        ok = True
    kb.sync.wait_idle()
    last = kb.sync.last_sync.isoformat() if kb.sync.last_sync else "never"
    print(f"[{'+' if ok else '-'}] sync {args.action} (enabled={kb.sync.enabled}, last sync {last})")
    return 0 if ok else 1


def cmd_generate(args):
    if args.kind == "password":
        print(generator.generate_password(args.length, uppercase=not args.no_upper,
                                          numbers=not args.no_numbers, symbols=args.symbols))
    else:
        secret = generator.generate_secret(args.length)
        print(secret)
        if args.issuer:
            print(otp.format_otpauth_uri(secret, args.issuer, args.account or ""))


def cmd_help(args):
    print("'keybox -h' for help.")


# --- Argparse builder ---
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="keybox", description="Encrypted password & TOTP vault")
    sub = p.add_subparsers(dest="cmd")
    p.set_defaults(func=cmd_help)

    pu = sub.add_parser("add-uri", help="Add a token from an otpauth:// URI")
    pu.add_argument("uri")
    pu.set_defaults(func=cmd_add_uri)

    pt = sub.add_parser("add-token", help="Add a token manually")
    pt.add_argument("--issuer", required=True)
    pt.add_argument("--account", default="")
    pt.add_argument("--secret", required=True, help="Base32 secret")
    pt.add_argument("--digits", type=int, default=otp.DEFAULT_DIGITS)
    pt.add_argument("--period", type=int, default=otp.DEFAULT_PERIOD)
    pt.set_defaults(func=cmd_add_token)

    pc = sub.add_parser("codes", help="Show current TOTP codes")
    pc.add_argument("--search")
    pc.set_defaults(func=cmd_codes)

    ph = sub.add_parser("hotp", help="HOTP code for a secret and counter")
    ph.add_argument("--secret", required=True)
    ph.add_argument("--counter", type=int, required=True)
    ph.add_argument("--digits", type=int, default=otp.DEFAULT_DIGITS)
    ph.set_defaults(func=cmd_hotp)

    pa = sub.add_parser("add-account", help="Store a password")
    pa.add_argument("--title", required=True)
    pa.add_argument("--account", required=True, help="Login / user name")
    pa.add_argument("--password", required=True)
    pa.add_argument("--note", default="")
    pa.add_argument("--category", default=AccountCategory.OTHER.value,
                    choices=[c.value for c in AccountCategory])
    pa.set_defaults(func=cmd_add_account)

    pl = sub.add_parser("accounts", help="List stored accounts")
    pl.add_argument("--category", choices=[c.value for c in AccountCategory])
    pl.add_argument("--search")
    pl.set_defaults(func=cmd_accounts)

    ps = sub.add_parser("show-password", help="Reveal a password (asks for authorization)")
    ps.add_argument("id")
    ps.set_defaults(func=cmd_show_password)

    pdt = sub.add_parser("delete-token", help="Move a token to the trash")
    pdt.add_argument("id")
    pdt.set_defaults(func=cmd_delete_token)

    pda = sub.add_parser("delete-account", help="Move an account to the trash")
    pda.add_argument("id")
    pda.set_defaults(func=cmd_delete_account)

    sub.add_parser("trash", help="List trashed records").set_defaults(func=cmd_trash)

    pr = sub.add_parser("restore", help="Restore a trashed record")
    pr.add_argument("trash_id")
    pr.set_defaults(func=cmd_restore)

    pv = sub.add_parser("activity", help="Show the activity feed")
    pv.add_argument("--limit", type=int, default=20)
    pv.add_argument("--mark-read", action="store_true")
    pv.set_defaults(func=cmd_activity)

    py = sub.add_parser("sync", help="Cloud sync control")
    py.add_argument("action", choices=["enable", "disable", "now", "restore"])
    py.set_defaults(func=cmd_sync)

    pg = sub.add_parser("generate", help="Generate a password or an OTP secret")
    pg.add_argument("kind", choices=["password", "secret"])
    pg.add_argument("--length", type=int, default=16)
    pg.add_argument("--no-upper", action="store_true")
    pg.add_argument("--no-numbers", action="store_true")
    pg.add_argument("--symbols", action="store_true")
    pg.add_argument("--issuer", help="Also print an otpauth URI (secret only)")
    pg.add_argument("--account")
    pg.set_defaults(func=cmd_generate)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
