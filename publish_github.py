#!/usr/bin/env python3
"""
publish_github.py
Create-or-update a rendered workday calendar in a GitHub repository using the
REST API v3, so the raw file URL can be shared as a subscribable feed.

Usage:
    python3 publish_github.py --file workdays.ics [--name workdays.ics]
Dependencies:
    pip install requests python-dotenv
Config (.env):
    GITHUB_TOKEN=<PAT with repo scope>
    GITHUB_REPOSITORY=username/reponame
    GITHUB_BRANCH=main
    GITHUB_FOLDER=calendars
"""
from __future__ import annotations

from base64 import b64encode
from pathlib import Path
import argparse
import logging
import sys

import requests

from settings import Settings, load_settings

log = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"


class PublishError(Exception):
    """GitHub refused the upload."""


def github_request(method: str, url: str, token: str, **kwargs):
    headers = kwargs.pop("headers", {})
    headers.update({
        "Authorization": f"token {token}",
        "Accept": "application/vnd.github+json",
        "User-Agent": "Workday-Calendar-Bot/1.0"
    })
    return requests.request(method, url, headers=headers, timeout=30, **kwargs)


def raw_url(cfg: Settings, filename: str) -> str:
    return (f"https://raw.githubusercontent.com/{cfg.github_repository}/"
            f"{cfg.github_branch}/{cfg.github_folder.strip('/')}/{filename}")


def publish(cfg: Settings, filename: str, content: str,
            message: str = "Update workday calendar") -> str:
    """Upload ``content`` as <GITHUB_FOLDER>/<filename>; return the raw URL."""
    if not cfg.publish_to_github:
        raise PublishError("GITHUB_TOKEN and GITHUB_REPOSITORY must be set")

    remote_path = f"{cfg.github_folder.strip('/')}/{filename}".lstrip("/")
    url = f"{API_ROOT}/repos/{cfg.github_repository}/contents/{remote_path}"

    # 1. Existing file? We need its SHA to update it.
    resp = github_request("GET", url, cfg.github_token, params={"ref": cfg.github_branch})
    sha = resp.json().get("sha") if resp.ok else None

    payload = {
        "message": message,
        "branch": cfg.github_branch,
        "content": b64encode(content.encode("utf-8")).decode(),
    }
    if sha:
        payload["sha"] = sha

    r = github_request("PUT", url, cfg.github_token, json=payload)
    if r.status_code not in (200, 201):
        raise PublishError(f"GitHub API error {r.status_code}: {r.text}")

    log.info("%s %s in %s@%s", "Updated" if sha else "Created",
             remote_path, cfg.github_repository, cfg.github_branch)
    return raw_url(cfg, filename)


def main():
    ap = argparse.ArgumentParser(description="Send a rendered calendar to GitHub.")
    ap.add_argument("--file", default="workdays.ics", type=Path,
                    help="Local file to upload (default: workdays.ics)")
    ap.add_argument("--name", default=None,
                    help="File name in the repository (default: same as --file)")
    args = ap.parse_args()

    if not args.file.is_file():
        sys.exit(f"❌ File not found: {args.file}")

    cfg = load_settings()
    try:
        url = publish(cfg, args.name or args.file.name, args.file.read_text(encoding="utf-8"))
    except (PublishError, requests.RequestException) as e:
        sys.exit(f"❌ {e}")
    print(f"✅ Published: {url}")


if __name__ == "__main__":
    main()
