"""Command-line entry point for the S3 folder browser."""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .backend import BackendClient
from .controller import FolderViewController, build_controller
from .keyspace import normalize_prefix
from .models import LocalFile
from .presenter import FolderBrowserPresenter, Notification
from .s3_backend import S3FolderBackend
from .settings import AppSettings, SettingsStorage
from .transport import ObjectTransport
from .ui_utils import format_file_count, format_last_modified, format_size, load_package_info


def build_parser() -> argparse.ArgumentParser:
    info = load_package_info()
    parser = argparse.ArgumentParser(prog="s3-folders", description=info.summary)
    parser.add_argument("--version", action="version", version=f"{info.name} {info.version}".strip())
    parser.add_argument("--backend-url", help="Base URL of the authorization backend")
    parser.add_argument("--bucket", help="Serve listings and signed URLs from this bucket directly")
    parser.add_argument("--endpoint-url", help="S3 endpoint used with --bucket")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    ls_cmd = commands.add_parser("ls", help="List a folder")
    ls_cmd.add_argument("prefix", nargs="?", help="Folder to list; defaults to the remembered folder or the root")

    get_cmd = commands.add_parser("get", help="Download one object")
    get_cmd.add_argument("key")
    get_cmd.add_argument("-o", "--output-dir")

    put_cmd = commands.add_parser("put", help="Upload a file into a folder")
    put_cmd.add_argument("file")
    put_cmd.add_argument("folder", nargs="?", default="")

    bundle_cmd = commands.add_parser("bundle", help="Download a folder as one archive")
    bundle_cmd.add_argument("prefix")
    bundle_cmd.add_argument("-o", "--output-dir")

    preview_cmd = commands.add_parser("preview", help="Print a short-lived read URL")
    preview_cmd.add_argument("key")
    return parser


def resolve_listing_prefix(requested: str | None, settings: AppSettings) -> str:
    if requested is None and settings.remember_last_folder:
        return normalize_prefix(settings.last_folder)
    return normalize_prefix(requested)


def remember_folder(storage: SettingsStorage, settings: AppSettings, folder: str) -> None:
    if not settings.remember_last_folder or settings.last_folder == folder:
        return
    settings.last_folder = folder
    storage.save(settings)


def print_listing(controller: FolderViewController) -> None:
    scope = controller.selected_folder or "/"
    print(f"{scope}  ({format_file_count(controller.visible_file_count)})")
    for folder in controller.visible_folders:
        print(f"  [dir]  {folder}")
    for row in controller.visible_files:
        print(f"  {format_size(row.size_bytes):>10}  {format_last_modified(row.last_modified)}  {row.name}")


async def run(args: argparse.Namespace) -> int:
    storage = SettingsStorage()
    settings = storage.load()
    if args.bucket:
        backend = S3FolderBackend(bucket_name=args.bucket, endpoint_url=args.endpoint_url)
    else:
        backend = BackendClient(args.backend_url or settings.backend_url, timeout=settings.request_timeout)
    transport = ObjectTransport(timeout=settings.transfer_timeout)
    controller = build_controller(
        backend,
        transport=transport,
        download_dir=settings.download_dir,
        authorization_timeout=settings.request_timeout,
    )
    presenter = FolderBrowserPresenter(controller)
    failures: list[Notification] = []

    def report(notification: Notification) -> None:
        if notification.level == "error":
            failures.append(notification)
        print(f"{notification.title}: {notification.message}", file=sys.stderr)

    def done(message: str):
        return lambda result: print(message.format(result=result))

    output_dir = getattr(args, "output_dir", None)
    if args.command == "ls":
        prefix = resolve_listing_prefix(args.prefix, settings)

        def listed(_):
            print_listing(controller)
            remember_folder(storage, settings, controller.selected_folder)

        if prefix:
            presenter.select_folder(prefix, on_success=listed, on_error=report)
        else:
            presenter.load_root(on_success=listed, on_error=report)
    elif args.command == "get":
        presenter.download_object(
            args.key,
            destination_dir=output_dir,
            on_success=done("Saved {result.key} to {result.destination}"),
            on_error=report,
        )
    elif args.command == "put":
        presenter.upload(
            LocalFile.from_path(Path(args.file)),
            folder=args.folder,
            on_success=done("Uploaded {result.key}"),
            on_error=report,
            on_warning=report,
        )
    elif args.command == "bundle":
        presenter.download_folder(
            args.prefix,
            destination_dir=output_dir,
            on_success=done("Saved archive of {result.key} to {result.destination}"),
            on_error=report,
        )
    elif args.command == "preview":
        presenter.preview(args.key, on_success=print, on_error=report)

    try:
        await presenter.wait_idle()
    finally:
        await transport.aclose()
        if isinstance(backend, BackendClient):
            await backend.aclose()
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
