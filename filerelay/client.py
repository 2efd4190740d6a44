import argparse
import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Sequence, Tuple, Union

import requests

from .config import ClientSettings, ConfigurationError, load_client_settings
from .logs import configure_logging
from .sniffing import classify_and_rewrap
from .storage import CHUNK_SIZE_BYTES, is_valid_extension

STDIN_MARKER = "-"

logger = logging.getLogger("filerelay.client")

UploadBody = Union[bytes, BinaryIO, Iterable[bytes]]


def upload(body: UploadBody, ext: str, settings: ClientSettings) -> str:
    """POST ``body`` to the relay and return the public URL of the artifact."""

    if not is_valid_extension(ext):
        raise ValueError(f"Extension must be 1-5 ASCII letters or digits, got {ext!r}")

    upload_url = f"{settings.base_url}/upload.{ext}"
    logger.debug("uploading url=%s ext=%s", upload_url, ext)
    response = requests.post(
        upload_url,
        data=body,
        headers={"Authorization": f"Bearer {settings.upload_token}"},
        timeout=settings.timeout,
    )
    try:
        response.raise_for_status()
        name = response.text.strip()
    finally:
        response.close()
    return f"{settings.base_url}/{name}"


def _iter_file(handle: BinaryIO) -> Iterable[bytes]:
    yield from iter(lambda: handle.read(CHUNK_SIZE_BYTES), b"")


def resolve_extension(
    source: BinaryIO,
    path: Optional[str],
    ext: Optional[str],
    prefix_budget: int,
) -> Tuple[str, Iterable[bytes]]:
    """Pick the upload extension and the body to send.

    An explicit extension wins, then a usable file suffix. Otherwise the
    stream is sniffed and the reconstructed stream becomes the body.
    """

    if ext:
        return ext, _iter_file(source)

    if path and path != STDIN_MARKER:
        suffix = Path(path).suffix.lstrip(".")
        if is_valid_extension(suffix):
            return suffix, _iter_file(source)

    logger.debug("peeking stream to guess extension")
    return classify_and_rewrap(source, prefix_budget)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filerelay-upload",
        description="Upload a file or standard input to a filerelay server.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=STDIN_MARKER,
        help="File to upload, or '-' for standard input (default).",
    )
    parser.add_argument(
        "ext",
        nargs="?",
        default=None,
        help="Extension for the stored file. Guessed from the file name or contents when omitted.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_client_settings()
    except ConfigurationError as error:
        configure_logging()
        logger.error("configuration_error %s", error)
        return 1
    configure_logging(settings.log_level)

    if args.ext is not None and not is_valid_extension(args.ext):
        logger.error("invalid_extension ext=%s", args.ext)
        return 1

    with ExitStack() as stack:
        if args.path == STDIN_MARKER:
            source = sys.stdin.buffer
        else:
            try:
                source = stack.enter_context(open(args.path, "rb"))
            except OSError as error:
                logger.error("open_failed path=%s error=%s", args.path, error)
                return 1

        ext, body = resolve_extension(source, args.path, args.ext, settings.sniff_prefix_bytes)
        try:
            url = upload(body, ext, settings)
        except requests.RequestException as error:
            logger.error("upload_failed error=%s", error)
            return 1

    print(url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
