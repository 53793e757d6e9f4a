# Copyright 2026 Storefront Authors
# Single command launcher for the storefront checkout demo

"""
Storefront Checkout Launcher

Usage:
    python run.py [checkout options]

This script:
1. Starts the storefront backend in background
2. Runs a checkout of the sample cart against it

Extra arguments are passed to the checkout command, e.g.
    python run.py --scenario decline
    python run.py --fail-orders 3
"""

import subprocess
import sys
import os
import time
import atexit

import httpx

from storefront.constants import Constants

constants = Constants()

# Server process reference
server_process = None


def wait_for_server(url: str, timeout: float = 10.0) -> bool:
    """Poll the health endpoint until the server answers."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if server_process.poll() is not None:
            return False
        try:
            if httpx.get(f"{url}{constants.API_HEALTH_PATH}", timeout=1.0).status_code == 200:
                return True
        except httpx.HTTPError:
            pass
        time.sleep(0.2)
    return False


def start_server(url: str):
    """Start the storefront backend in background."""
    global server_process

    print("[*] Starting Storefront Backend...")

    server_process = subprocess.Popen(
        [sys.executable, "-m", "storefront.server"],
        env=os.environ.copy(),
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        creationflags=subprocess.CREATE_NO_WINDOW if sys.platform == 'win32' else 0
    )

    if wait_for_server(url):
        print(f"[OK] Storefront Backend started on {url}")
        return True
    else:
        print("[ERROR] Failed to start Storefront Backend")
        return False


def stop_server():
    """Stop the storefront backend."""
    global server_process
    if server_process and server_process.poll() is None:
        print("\n[*] Stopping Storefront Backend...")
        server_process.terminate()
        server_process.wait(timeout=5)
        print("[OK] Server stopped")


def run_checkout(args):
    """Run the checkout command of the CLI."""
    return subprocess.run(
        [sys.executable, "-m", "storefront_cli", "checkout", *args],
        env=os.environ.copy(),
    ).returncode


def main():
    print("\n" + "=" * 50)
    print("  Storefront Checkout Launcher")
    print("=" * 50 + "\n")

    url = os.getenv(constants.ENV_API_URL, constants.DEFAULT_API_URL)

    # Register cleanup
    atexit.register(stop_server)

    if not start_server(url):
        print(f"[ERROR] Cannot start server. Check if port {constants.DEFAULT_PORT} is available.")
        return 1

    try:
        return run_checkout(sys.argv[1:])
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted")
        return 130
    finally:
        stop_server()


if __name__ == "__main__":
    sys.exit(main())
