#!/usr/bin/env python3
"""HTTP client for the memoir internal API.

Used from cron and local automation to create, process and poll memory jobs
without going through MCP auth. Standard library only so it can run from any
interpreter on the host.

Usage:
    memoir_client.py create USER_ID
    memoir_client.py process JOB_ID
    memoir_client.py status JOB_ID
    memoir_client.py profile USER_ID
    memoir_client.py scheduled [--lookback-days N]
    memoir_client.py health
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

# Configuration
# Internal API is unauthenticated and only reachable from localhost
MEMOIR_BASE_URL = os.environ.get("MEMOIR_URL", "http://localhost:8787")
MEMOIR_TIMEOUT = int(os.environ.get("MEMOIR_TIMEOUT", "30"))


class MemoirError(Exception):
    """Raised when the memoir server returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MemoirUnavailable(Exception):
    """Raised when the memoir server is not reachable."""
    pass


def _request(
    endpoint: str,
    data: dict[str, Any] | None = None,
    method: str = "POST",
    timeout: int | None = None,
) -> dict:
    """Call an internal API endpoint.

    Args:
        endpoint: API endpoint path (e.g., "/internal/memory-jobs/create")
        data: Request body as a dict (POST only)
        method: HTTP method
        timeout: Override the request timeout in seconds

    Returns:
        Response as a dict

    Raises:
        MemoirUnavailable: If server is not reachable
        MemoirError: If server returns an error
    """
    url = f"{MEMOIR_BASE_URL}{endpoint}"
    payload = json.dumps(data).encode("utf-8") if data is not None else None
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }

    req = urllib.request.Request(url, data=payload, headers=headers, method=method)

    try:
        with urllib.request.urlopen(req, timeout=timeout or MEMOIR_TIMEOUT) as response:
            return json.loads(response.read().decode("utf-8"))

    except urllib.error.HTTPError as e:
        if e.code == 403:
            raise MemoirError("Forbidden: Internal API is localhost only", status_code=403)
        try:
            body = json.loads(e.read().decode("utf-8"))
            message = body.get("error", str(e))
        except (ValueError, AttributeError):
            message = str(e)
        raise MemoirError(message, status_code=e.code)
    except urllib.error.URLError as e:
        raise MemoirUnavailable(f"Cannot connect to memoir server at {MEMOIR_BASE_URL}: {e}")
    except json.JSONDecodeError as e:
        raise MemoirError(f"Invalid JSON response from server: {e}")


def check_health() -> bool:
    """Check if the memoir server is available.

    Raises:
        MemoirUnavailable: If server is not reachable
    """
    url = f"{MEMOIR_BASE_URL}/health"
    try:
        with urllib.request.urlopen(url, timeout=MEMOIR_TIMEOUT) as response:
            return response.status == 200
    except urllib.error.HTTPError:
        # Server responded, just not healthy
        return False
    except urllib.error.URLError as e:
        raise MemoirUnavailable(f"Cannot connect to memoir server at {MEMOIR_BASE_URL}: {e}")


def create_job(user_id: str) -> dict:
    """Create a memory job for a user. Processing starts server-side."""
    return _request("/internal/memory-jobs/create", {"user_id": user_id})


def process_job(job_id: str) -> dict:
    """Process a pending job and wait for the result."""
    # Extraction runs one model call per conversation; allow for a full batch
    return _request("/internal/memory-jobs/process", {"job_id": job_id}, timeout=max(MEMOIR_TIMEOUT, 300))


def job_status(job_id: str) -> dict:
    """Get the status of a job."""
    query = urllib.parse.urlencode({"job_id": job_id})
    return _request(f"/internal/memory-jobs/status?{query}", method="GET")


def get_profile(user_id: str) -> dict:
    """Get a user's memory profile."""
    return _request("/internal/profile", {"user_id": user_id})


def run_scheduled(lookback_days: int | None = None) -> dict:
    """Create jobs for all recently active users."""
    data: dict[str, Any] = {}
    if lookback_days is not None:
        data["lookback_days"] = lookback_days
    return _request("/internal/memory-jobs/scheduled", data, timeout=max(MEMOIR_TIMEOUT, 300))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="memoir internal API client")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="create a memory job for a user")
    create.add_argument("user_id")

    process = sub.add_parser("process", help="process a pending job")
    process.add_argument("job_id")

    status = sub.add_parser("status", help="get job status")
    status.add_argument("job_id")

    profile = sub.add_parser("profile", help="get a user's profile")
    profile.add_argument("user_id")

    scheduled = sub.add_parser("scheduled", help="create jobs for recently active users")
    scheduled.add_argument("--lookback-days", type=int, default=None)

    sub.add_parser("health", help="check server health")

    args = parser.parse_args(argv)

    try:
        if args.command == "health":
            healthy = check_health()
            print("[memoir] Server is healthy" if healthy else "[memoir] Server is unhealthy")
            return 0 if healthy else 1
        if args.command == "create":
            result = create_job(args.user_id)
        elif args.command == "process":
            result = process_job(args.job_id)
        elif args.command == "status":
            result = job_status(args.job_id)
        elif args.command == "profile":
            result = get_profile(args.user_id)
        else:
            result = run_scheduled(args.lookback_days)
    except MemoirUnavailable as e:
        print(f"[memoir] ERROR: {e}", file=sys.stderr)
        return 2
    except MemoirError as e:
        print(f"[memoir] ERROR ({e.status_code}): {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
