import argparse
import dataclasses
import logging
import sys
from typing import List, Optional, Sequence

from . import __version__
from .bulk import ChangeACL, DeleteObject, apply, select, select_all
from .config import ACL_POLICIES, Settings, resolve_settings
from .errors import ConfigurationError, S3ToolError
from .log import setup_logging
from .models import ACLGrant, TransferRequest
from .store import ObjectStore
from .transfer import default_upload_key, download, download_to_path, upload

logger = logging.getLogger(__name__)

COMMANDS = [
    ("acls", "List known ACLs and their purposes / access rules."),
    ("commands", "List known sub-commands of this s3 client."),
    None,
    ("list-buckets", "List all S3 buckets owned by you."),
    ("create-bucket", "Create a new bucket."),
    ("delete-bucket", "Delete an empty bucket."),
    None,
    ("put", "Upload a new file to S3."),
    ("get", "Download a file from S3."),
    ("cat", "Print the contents of a file in S3."),
    ("url", "Print the HTTPS URL for a file in S3."),
    ("rm", "Delete file from a bucket."),
    ("ls", "List the files in a bucket."),
    None,
    ("chacl", "Change the ACL on a bucket or a file."),
    ("lsacl", "List the ACL on a bucket or a file."),
]


def _table(headers: Sequence[str], rows: List[Sequence[str]]) -> None:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    fmt = "  ".join(f"{{:<{w}}}" for w in widths)
    print(fmt.format(*headers).rstrip())
    for row in rows:
        print(fmt.format(*row).rstrip())


def _print_acl(width: int, name: str, acl: List[ACLGrant]) -> None:
    if not acl:
        print(f"{name}  (no grants in acl)")
        return
    for i, grant in enumerate(acl):
        label = name if i == 0 else ""
        if grant.is_user:
            print(f"{label:>{width}}  user  {grant.grantee_name} has {grant.permission}")
        else:
            print(f"{label:>{width}}  group {grant.group} has {grant.permission}")


def _open_store(settings: Settings, bucket: Optional[str] = None) -> ObjectStore:
    if bucket:
        settings = dataclasses.replace(settings, bucket=bucket)
    return ObjectStore.from_settings(settings)


# ---- commands --------------------------------------------------------------


def cmd_commands(args: argparse.Namespace, settings: Settings) -> int:
    print("General usage: s3tool COMMAND [OPTIONS...]\n")
    for entry in COMMANDS:
        if entry is None:
            print()
            continue
        name, summary = entry
        print(f"  {name:<16}{summary}")
    return 0


def cmd_acls(args: argparse.Namespace, settings: Settings) -> int:
    print("This utility knows about the following ACLs:\n")
    for name, description in ACL_POLICIES.items():
        print(f"  {name}")
        print(f"    {description}\n")
    return 0


def cmd_list_buckets(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(settings)
    logger.debug("listing buckets in region %s", settings.region)
    buckets = store.list_buckets()
    if not buckets:
        print("no buckets found.", file=sys.stderr)
        return 0
    rows = [[b.name, str(b.creation_date or ""), b.owner_name] for b in buckets]
    _table(["bucket", "created at", "owner"], rows)
    return 0


def cmd_create_bucket(args: argparse.Namespace, settings: Settings) -> int:
    policy = settings.bucket_acl
    store = _open_store(settings)
    store.create_bucket(args.name, settings.region, policy)
    print(f"bucket {args.name} created with acl {policy}.")
    return 0


def cmd_delete_bucket(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(settings, bucket=args.name)
    if args.recursive:
        logger.debug("recursively deleting all files in bucket %s...", args.name)
        apply(store, DeleteObject(), select_all(store.list_objects()))
    store.delete_bucket(args.name)
    print(f"bucket {args.name} deleted.")
    return 0


def cmd_put(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    if args.to and len(args.files) > 1:
        raise ConfigurationError("the --to option cannot be specified with multiple uploads.")
    if "-" in args.files and not args.to:
        raise ConfigurationError("uploading from stdin requires the --to option.")
    concurrency = settings.concurrency

    store = _open_store(settings)
    logger.debug("spinning up %d i/o thread(s) for uploading data.", concurrency)
    for path in args.files:
        key = args.to or default_upload_key(path)
        if path == "-":
            logger.debug("streaming data from standard input to %s:%s", store.bucket, key)
            source = sys.stdin.buffer
        else:
            logger.debug("uploading %s to %s:%s", path, store.bucket, key)
            try:
                source = open(path, "rb")
            except OSError as e:
                raise ConfigurationError(f"cannot open {path}: {e}") from e
        try:
            result = upload(
                store,
                TransferRequest(
                    source=source,
                    key=key,
                    content_type=args.content_type,
                    concurrency=concurrency,
                    label=path,
                ),
            )
        finally:
            if source is not sys.stdin.buffer:
                source.close()
        logger.debug(
            "uploaded %s (%s, %d bytes in %d part(s), %.3fs)",
            result.key, result.content_type, result.size_bytes, result.parts, result.duration_sec,
        )
    return 0


def cmd_get(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    store = _open_store(settings)
    if args.to == "-":
        logger.debug("streaming %s:%s to standard output", store.bucket, args.key)
        download(store, args.key, sys.stdout.buffer)
        sys.stdout.flush()
        return 0
    result = download_to_path(store, args.key, args.to)
    logger.debug("downloaded %d bytes in %.3fs", result.size_bytes, result.duration_sec)
    return 0


def cmd_cat(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    store = _open_store(settings)
    logger.debug("streaming %s:%s to standard output", store.bucket, args.key)
    download(store, args.key, sys.stdout.buffer)
    sys.stdout.flush()
    return 0


def cmd_url(args: argparse.Namespace, settings: Settings) -> int:
    bucket = settings.require_bucket()
    print(f"https://{bucket}.s3.amazonaws.com/{args.key}")
    return 0


def cmd_rm(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    store = _open_store(settings)
    if args.recursive:
        logger.debug("recursively deleting all files under %s:%s", store.bucket, args.key)
        apply(store, DeleteObject(), select(args.key, store.list_objects()))
        return 0
    logger.debug("deleting %s:%s", store.bucket, args.key)
    store.delete(args.key)
    return 0


def cmd_ls(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    store = _open_store(settings)
    logger.debug("listing %s:*", store.bucket)
    rows = [
        [f.key, str(f.last_modified or ""), f.owner_name, f.etag, str(f.size)]
        for f in store.list_objects()
    ]
    _table(["file", "last modified", "owner", "etag", "size"], rows)
    return 0


def cmd_chacl(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    if len(args.args) > 2:
        raise ConfigurationError("too many arguments.")
    path, policy = ("", args.args[0]) if len(args.args) == 1 else args.args
    store = _open_store(settings)

    if args.recursive:
        logger.debug("recursively changing the acl of all files under %s:%s", store.bucket, path)
        listing = store.list_objects()
        selection = select(path, listing) if path else select_all(listing)
        apply(store, ChangeACL(policy), selection)
        if path:
            return 0

    logger.debug("chacl %s %s", path or store.bucket, policy)
    store.change_acl(path, policy)
    return 0


def cmd_lsacl(args: argparse.Namespace, settings: Settings) -> int:
    settings.require_bucket()
    store = _open_store(settings)
    path = args.key or ""

    if args.recursive:
        logger.debug("recursively retrieving the acl of all files under %s:%s", store.bucket, path)
        listing = store.list_objects()
        selection = select(path, listing) if path else select_all(listing)
        width = max((len(k) for k in selection), default=0)
        for key in selection:
            _print_acl(width, key, store.get_acl(key))
        return 0

    _print_acl(len(path), path, store.get_acl(path))
    return 0


# ---- argument parsing --------------------------------------------------------


def _common_options() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("-D", "--debug", action="store_true", help="Enable verbose logging of what s3tool is doing ($S3_DEBUG)")
    p.add_argument("-T", "--trace", action="store_true", help="Enable HTTP tracing of S3 communication ($S3_TRACE)")
    p.add_argument("--aki", default=None, help="Access key ID ($S3_AKI or $AWS_ACCESS_KEY_ID)")
    p.add_argument("--key", dest="secret_key", default=None, help="Secret access key ($S3_KEY or $AWS_SECRET_ACCESS_KEY)")
    p.add_argument("--s3-url", default=None, help="Full URL of an S3-compatible endpoint ($S3_URL)")
    p.add_argument("-r", "--region", default=None, help="Region to operate in, default us-east-1 ($S3_REGION)")
    p.add_argument("-b", "--bucket", default=None, help="Bucket to operate on ($S3_BUCKET)")
    p.add_argument("-k", "--insecure", action="store_true", help="Skip TLS certificate verification ($S3_INSECURE)")
    p.add_argument(
        "-P",
        "--path-buckets",
        action="store_true",
        help="Use path-based bucket addressing, needed by some S3 work-alikes ($S3_USE_PATH)",
    )
    p.add_argument("--profile", default=None, help="AWS profile name to use for credentials (optional)")
    return p


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    p = argparse.ArgumentParser(
        prog="s3tool",
        description="Command-line client for S3-compatible object stores.",
    )
    p.add_argument("-v", "--version", action="store_true", help="Print s3tool version information, then exit")
    sub = p.add_subparsers(dest="command", metavar="COMMAND")

    def command(name: str, aliases: List[str], help_text: str, func) -> argparse.ArgumentParser:
        cp = sub.add_parser(name, aliases=aliases, parents=[common], help=help_text, description=help_text)
        cp.set_defaults(func=func)
        return cp

    command("commands", [], "List known sub-commands", cmd_commands)
    command("acls", [], "List known ACLs and what they grant", cmd_acls)
    command("list-buckets", ["lsb"], "List all buckets you own", cmd_list_buckets)

    cp = command("create-bucket", ["new-bucket", "cb"], "Create a new bucket", cmd_create_bucket)
    cp.add_argument("name", help="Bucket name")
    cp.add_argument("--acl", "--policy", dest="acl", default=None, help="ACL for the bucket, default private ($S3_ACL)")

    cp = command("delete-bucket", ["remove-bucket"], "Delete a bucket", cmd_delete_bucket)
    cp.add_argument("name", help="Bucket name")
    cp.add_argument("-R", dest="recursive", action="store_true", help="Delete every file in the bucket first (dangerous)")

    cp = command("put", ["upload"], "Upload local files (or - for stdin)", cmd_put)
    cp.add_argument("files", nargs="+", help="Local file paths, or - to read standard input")
    cp.add_argument("--to", default=None, help="Destination key; default is the path without leading . and /")
    cp.add_argument("-t", "--content-type", default=None, help="Content-Type; default is detected from the first 512 bytes")
    cp.add_argument(
        "-n",
        "--parallel",
        type=int,
        default=None,
        help="Number of parallel upload workers, default 2 ($S3_THREADS)",
    )

    cp = command("get", ["download"], "Download a file", cmd_get)
    cp.add_argument("key", help="Remote file path")
    cp.add_argument("--to", default=None, help="Local destination; default is the key's final component, - for stdout")

    cp = command("cat", [], "Print a remote file to standard output", cmd_cat)
    cp.add_argument("key", help="Remote file path")

    cp = command("url", [], "Print the HTTPS URL for a file", cmd_url)
    cp.add_argument("key", help="Remote file path")

    cp = command("rm", ["remove", "delete"], "Remove a file from a bucket", cmd_rm)
    cp.add_argument("key", help="Remote file path")
    cp.add_argument("-R", dest="recursive", action="store_true", help="Remove everything under the path (dangerous)")

    command("ls", ["list"], "List the files in a bucket", cmd_ls)

    cp = command("chacl", ["change-acl"], "Change the ACL on a bucket or a file", cmd_chacl)
    cp.add_argument("args", nargs="+", metavar="[PATH] ACL", help="Optional remote path, then the ACL to apply")
    cp.add_argument("-R", dest="recursive", action="store_true", help="Change every file under the path (dangerous)")

    cp = command("lsacl", ["list-acl"], "List the ACL on a bucket or a file", cmd_lsacl)
    cp.add_argument("key", nargs="?", default="", help="Remote file path; the bucket when omitted")
    cp.add_argument("-R", dest="recursive", action="store_true", help="List the ACL of every file under the path")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.version:
        print(f"s3tool v{__version__}")
        return 0
    if not args.command:
        print("I have no idea what you want me to do.", file=sys.stderr)
        print("Have you tried running `s3tool commands`?", file=sys.stderr)
        return 1

    try:
        settings = resolve_settings(args)
        setup_logging(debug=settings.debug, trace=settings.trace)
        logger.debug("s3tool v%s starting up...", __version__)
        logger.debug("determined command to be '%s'", args.command)
        return args.func(args, settings)
    except S3ToolError as e:
        print(f"!!! {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
