import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from flask import Response, render_template
from markupsafe import Markup

MAX_DESCRIPTION_LINES = 10
TITLE_MARKER = "# "
IMAGE_MARKER = "!["

PAGE_BACKGROUND = "rgb(31, 31, 31)"
DARK_BACKGROUND = "#121212"

# Light theme declarations commonly emitted by code-to-HTML exporters.
DARK_THEME_REWRITES: Tuple[Tuple[str, str], ...] = (
    ("background-color:#ffffff;", "background-color:#121212;"),
    ("color:#000000;", "color:#ffffff;"),
    ("font-family:monospace", "font-family: 'Hack Nerd Font', 'Hack', monospace"),
)

logger = logging.getLogger("filerelay.postprocessing")


def _split_lines(contents: str) -> List[str]:
    # Only "\n" ends a line; a trailing "\r" belongs to the line ending.
    return [line[:-1] if line.endswith("\r") else line for line in contents.split("\n")]


def _description(lines: Iterable[str]) -> str:
    selected = []
    for line in lines:
        if not line.strip() or line.startswith(IMAGE_MARKER):
            continue
        selected.append(line)
        if len(selected) == MAX_DESCRIPTION_LINES:
            break
    return "\n".join(selected)


def extract_markdown_summary(contents: str, fallback_title: str) -> Tuple[str, str]:
    """Return ``(title, description)`` for a Markdown document.

    The first ``# `` heading is the title and the description is built from
    the lines after it; without a heading the file name is the title and the
    description comes from the whole document. Blank lines and image embeds
    never count towards the description.
    """

    lines = iter(_split_lines(contents))
    for line in lines:
        if line.startswith(TITLE_MARKER):
            title = line
            while title.startswith(TITLE_MARKER):
                title = title[len(TITLE_MARKER):]
            return title, _description(lines)
    return fallback_title, _description(_split_lines(contents))


def _html_response(body: str) -> Response:
    return Response(body, mimetype="text/html")


def render_head(title: str, description: str, background: str = PAGE_BACKGROUND) -> str:
    return render_template(
        "head.html",
        title=title,
        description=description,
        background=background,
    )


def process_markdown(path: Path) -> Response:
    contents = path.read_text(encoding="utf-8")
    title, description = extract_markdown_summary(contents, path.name)
    return _html_response(
        render_template(
            "md.html",
            head=Markup(render_head(title, description)),
            contents=contents,
        )
    )


def process_html(path: Path) -> Response:
    """Theme a stored HTML document.

    Full documents get the themed head injected into their own ``<head>`` and
    a few light colours swapped for dark ones; fragments are wrapped in a
    minimal document.
    """

    contents = path.read_text(encoding="utf-8")
    if "<html" in contents and "<head>" in contents:
        head = render_head(path.name, "", background=DARK_BACKGROUND)
        themed = contents.replace("<head>", f"<head>{head}")
        for light, dark in DARK_THEME_REWRITES:
            themed = themed.replace(light, dark)
        return _html_response(themed)

    return _html_response(
        render_template(
            "html.html",
            head=Markup(render_head(path.name, "")),
            contents=Markup(contents),
        )
    )


PROCESSORS: Dict[str, Callable[[Path], Response]] = {
    ".md": process_markdown,
    ".html": process_html,
}


def processor_for(path: Path) -> Optional[Callable[[Path], Response]]:
    return PROCESSORS.get(path.suffix)


def process(path: Path) -> Optional[Response]:
    """Render ``path`` if it has a known format, otherwise return ``None``.

    Errors while reading or decoding propagate so the caller can turn them
    into a server error instead of silently serving the raw bytes.
    """

    processor = processor_for(path)
    if processor is None:
        return None
    logger.debug("postprocessing filename=%s processor=%s", path.name, processor.__name__)
    return processor(path)
