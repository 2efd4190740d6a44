import re
import uuid
from datetime import timedelta
from pathlib import Path
from secrets import compare_digest
from typing import Optional

from flask import Flask, Response, abort, g, render_template, request, send_file
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join

from . import postprocessing
from .config import ServerSettings
from .logs import get_lifecycle_logger, sanitize_log_value
from .naming import NameSpaceExhaustedError, generate_unique
from .retention import RetentionScheduler
from .storage import EphemeralStore, StoreClosedError

# Only the literal "upload.<ext>" segment is an upload route.
UPLOAD_SEGMENT_PATTERN = re.compile(r"upload\.([A-Za-z0-9]{1,5})")

lifecycle_logger = get_lifecycle_logger()


def bearer_matches(header: Optional[str], upload_token: str) -> bool:
    """Byte-exact, constant-time comparison against ``Bearer <token>``."""

    if header is None:
        return False
    expected = f"Bearer {upload_token}".encode("utf-8")
    return compare_digest(header.encode("utf-8"), expected)


def create_app(
    settings: ServerSettings,
    store: EphemeralStore,
    retention: RetentionScheduler,
) -> Flask:
    """Build the relay application around an initialised store and scheduler."""

    app = Flask(__name__)
    if settings.max_upload_size_bytes:
        app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_size_bytes

    retention_ttl = timedelta(seconds=settings.retention_seconds)
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=[],
        storage_uri=settings.rate_limit_storage,
    )

    def _retain_partial(filename: str) -> None:
        store.release(filename)
        try:
            partial = store.artifact_path(filename)
            if partial.exists():
                retention.schedule_path(partial, retention_ttl)
        except StoreClosedError:
            return

    @app.before_request
    def add_request_id() -> None:
        """Assign a request identifier for downstream logging."""

        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)

    @app.after_request
    def log_request_completion(response: Response):
        lifecycle_logger.info(
            "request_completed method=%s path=%s status=%d",
            request.method,
            sanitize_log_value(request.path),
            response.status_code,
        )
        return response

    @app.after_request
    def add_response_headers(response: Response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if hasattr(g, "request_id"):
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.route("/<segment>", methods=["POST"], provide_automatic_options=False)
    def upload(segment: str):
        match = UPLOAD_SEGMENT_PATTERN.fullmatch(segment)
        if match is None:
            abort(404)
        if not bearer_matches(request.headers.get("Authorization"), settings.upload_token):
            lifecycle_logger.warning(
                "upload_unauthorized path=%s ip=%s",
                sanitize_log_value(request.path),
                request.remote_addr or "unknown",
            )
            abort(404)

        ext = match.group(1)
        try:
            name = generate_unique(store, ext)
        except (NameSpaceExhaustedError, StoreClosedError) as error:
            lifecycle_logger.error("upload_name_unavailable ext=%s error=%s", ext, error)
            abort(500)

        filename = f"{name}.{ext}"
        try:
            artifact, bytes_written = store.write(name, ext, request.stream)
        except HTTPException:
            _retain_partial(filename)
            raise
        except (OSError, StoreClosedError):
            lifecycle_logger.exception("upload_write_failed filename=%s", filename)
            _retain_partial(filename)
            abort(500)

        deadline = retention.schedule(artifact, retention_ttl)
        lifecycle_logger.info(
            "file_uploaded filename=%s size=%d expires_at=%s",
            filename,
            bytes_written,
            deadline.isoformat(),
        )
        return Response(artifact.filename, mimetype="text/plain")

    @app.route("/<path:filename>", methods=["GET"], provide_automatic_options=False)
    @limiter.limit(lambda: settings.download_rate_limit)
    def serve(filename: str):
        try:
            directory = store.path()
        except StoreClosedError:
            abort(404)

        target = safe_join(str(directory), filename)
        if target is None or not Path(target).is_file():
            lifecycle_logger.info("file_missing path=%s", sanitize_log_value(filename))
            abort(404)

        path = Path(target)
        try:
            rendered = postprocessing.process(path)
        except FileNotFoundError:
            lifecycle_logger.warning("file_missing_race path=%s", sanitize_log_value(filename))
            abort(404)
        except (OSError, UnicodeDecodeError):
            lifecycle_logger.exception(
                "postprocessing_failed path=%s", sanitize_log_value(filename)
            )
            abort(500)

        if rendered is not None:
            lifecycle_logger.info("file_rendered path=%s", sanitize_log_value(filename))
            return rendered

        lifecycle_logger.info("file_served path=%s", sanitize_log_value(filename))
        try:
            return send_file(path)
        except FileNotFoundError:
            lifecycle_logger.warning("file_missing_race path=%s", sanitize_log_value(filename))
            abort(404)

    @app.errorhandler(404)
    @app.errorhandler(405)
    def not_found(error):
        # Unknown routes, wrong methods, bad extensions and failed auth look alike.
        return render_template("404.html"), 404

    @app.errorhandler(500)
    def server_error(error):
        return Response("Internal Server Error", status=500, mimetype="text/plain")

    return app
