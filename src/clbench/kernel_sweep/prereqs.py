from __future__ import annotations

import os
from pathlib import Path

import pyopencl as cl

from .model import PrerequisiteCheck


def check_platform_available() -> PrerequisiteCheck:
    try:
        platforms = cl.get_platforms()
    except cl.Error as e:
        return PrerequisiteCheck(check_name="platform_available", status="fail", details=str(e))
    if platforms:
        return PrerequisiteCheck(check_name="platform_available", status="pass")
    return PrerequisiteCheck(
        check_name="platform_available",
        status="fail",
        details="No OpenCL ICD found. Install a vendor driver or pocl.",
    )


def check_device_available() -> PrerequisiteCheck:
    """Mirror the default enumeration used by `DeviceHandle.acquire`: first platform, any device type."""
    try:
        platforms = cl.get_platforms()
        devices = platforms[0].get_devices(device_type=cl.device_type.ALL) if platforms else []
    except cl.Error as e:
        return PrerequisiteCheck(check_name="device_available", status="fail", details=str(e))
    if devices:
        return PrerequisiteCheck(check_name="device_available", status="pass")
    return PrerequisiteCheck(check_name="device_available", status="fail", details="First platform exposes no device.")


def check_out_dir_writable(out_dir: Path) -> PrerequisiteCheck:
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        test = out_dir / f".write_test_{os.getpid()}"
        test.write_text("ok")
        test.unlink()
        return PrerequisiteCheck(check_name="out_dir_writable", status="pass")
    except OSError as e:
        return PrerequisiteCheck(check_name="out_dir_writable", status="fail", details=str(e))


def check_all(*, out_dir: Path | None = None) -> list[PrerequisiteCheck]:
    checks = [check_platform_available(), check_device_available()]
    if out_dir is not None:
        checks.append(check_out_dir_writable(out_dir))
    return checks


def format_prereq_failures(checks: list[PrerequisiteCheck]) -> str:
    lines: list[str] = ["Missing prerequisites:"]
    for c in checks:
        if c.status != "fail":
            continue
        hint = f" - {c.details}" if c.details else ""
        lines.append(f"- {c.check_name}{hint}")
    return "\n".join(lines)
