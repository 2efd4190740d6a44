#!/usr/bin/env python3
"""
Smoke check against a running filerelay server.
Uploads a few artifacts, reads them back and probes the not-found surface.
"""

import os
import sys

import requests

BASE_URL = os.environ.get("URL", "http://localhost:3030").rstrip("/")
UPLOAD_TOKEN = os.environ.get("UPLOAD_TOKEN", "")
results = []


class CheckResult:
    def __init__(self, endpoint, method, status, message):
        self.endpoint = endpoint
        self.method = method
        self.status = status
        self.message = message

    def __str__(self):
        status_symbol = "✓" if self.status == "PASS" else "✗"
        return f"[{status_symbol}] {self.method} {self.endpoint}: {self.message}"


def log_check(endpoint, method, status, message):
    result = CheckResult(endpoint, method, status, message)
    results.append(result)
    print(result)


def upload(ext, body, token=UPLOAD_TOKEN):
    return requests.post(
        f"{BASE_URL}/upload.{ext}",
        data=body,
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )


def check_text_round_trip():
    print("\n=== Text upload ===")
    response = upload("txt", b"test1")
    if response.status_code != 200:
        log_check("/upload.txt", "POST", "FAIL", f"Unexpected status code: {response.status_code}")
        return
    name = response.text
    log_check("/upload.txt", "POST", "PASS", f"Stored as {name}")

    download = requests.get(f"{BASE_URL}/{name}", timeout=10)
    if download.status_code == 200 and download.content == b"test1":
        log_check(f"/{name}", "GET", "PASS", "Content matches")
    else:
        log_check(f"/{name}", "GET", "FAIL", f"Got {download.status_code}: {download.content[:40]!r}")


def check_rendered_markdown():
    print("\n=== Markdown rendering ===")
    name = upload("md", b"# Smoke check\n\nRendered by the relay.\n").text
    response = requests.get(f"{BASE_URL}/{name}", timeout=10)
    if "text/html" in response.headers.get("Content-Type", "") and "<title>Smoke check</title>" in response.text:
        log_check(f"/{name}", "GET", "PASS", "Rendered as HTML")
    else:
        log_check(f"/{name}", "GET", "FAIL", "Markdown was not rendered")


def check_not_found_surface():
    print("\n=== Not-found surface ===")
    reference = requests.post(f"{BASE_URL}/definitely-not-a-route", timeout=10)
    probes = {
        "bad token": upload("txt", b"x", token="wrong"),
        "bad extension": upload("toolong", b"x"),
        "missing file": requests.get(f"{BASE_URL}/missing-file.txt", timeout=10),
    }
    for label, response in probes.items():
        if response.status_code == 404 and response.content == reference.content:
            log_check(label, response.request.method, "PASS", "Indistinguishable 404")
        else:
            log_check(label, response.request.method, "FAIL", f"Got {response.status_code}")


def main():
    if not UPLOAD_TOKEN:
        print("UPLOAD_TOKEN must be set")
        return 1
    try:
        check_text_round_trip()
        check_rendered_markdown()
        check_not_found_surface()
    except requests.RequestException as error:
        log_check(BASE_URL, "-", "FAIL", f"Server unreachable: {error}")

    failures = [result for result in results if result.status != "PASS"]
    print(f"\n{len(results) - len(failures)} passed, {len(failures)} failed")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
