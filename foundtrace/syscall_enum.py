"""Generate syscall enum modules from glibc's per-architecture syscall headers."""

from __future__ import annotations

import argparse
import os
import re
import shutil
import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Optional

REPO_ENV_VAR = "GLIBC_REPO_URL"

SYSCALL_SRC_DST: tuple[tuple[str, str], ...] = (
    ("sysdeps/unix/sysv/linux/aarch64/arch-syscall.h", "aarch64.py"),
    ("sysdeps/unix/sysv/linux/x86_64/64/arch-syscall.h", "x86_64.py"),
)

_DEFINE_RE = re.compile(r"^#define\s+__NR_(?P<syscall>\S+)\s+(?P<id>\d+)$", re.MULTILINE)


def get_syscall_list(header_text: str) -> list[tuple[str, str]]:
    """Return ``(name, number)`` pairs for every ``__NR_`` define in a header."""
    return [(m.group("syscall"), m.group("id")) for m in _DEFINE_RE.finditer(header_text)]


def render_syscall_module(syscall_list: Iterable[tuple[str, str]]) -> str:
    """Render a Python module defining the ``Syscall`` enum."""
    lines = [
        "# AUTOGENERATED by foundtrace.syscall_enum",
        "",
        '"""Linux syscalls.',
        "",
        "Note that this enum can have different members for different processor architectures.",
        '"""',
        "",
        "import enum",
        "",
        "Syscall = enum.IntEnum(",
        '    "Syscall",',
        "    [",
    ]
    for name, number in syscall_list:
        lines.append(f"        # man 2 {name}")
        lines.append(f"        ({name!r}, {int(number)}),")
    lines.extend(["    ],", ")", ""])
    return "\n".join(lines)


def write_syscall_module(out_path: Path | str, syscall_list: Iterable[tuple[str, str]]) -> None:
    """Write the rendered enum module to ``out_path``."""
    Path(out_path).write_text(render_syscall_module(syscall_list), encoding="utf-8")


def fetch_glibc_sources(target_dir: Path | str) -> Path:
    """Shallow-clone glibc into ``target_dir/glibc`` and return that path.

    The repository URL is read from the ``GLIBC_REPO_URL`` environment variable.
    """
    repo_url = os.environ.get(REPO_ENV_VAR)
    if not repo_url:
        raise RuntimeError(f"{REPO_ENV_VAR} must name the glibc git repository")

    print("Fetching glibc sources...")
    print("=========================")

    target = Path(target_dir).resolve(strict=True)
    glibc_dir = target / "glibc"
    shutil.rmtree(glibc_dir, ignore_errors=True)

    subprocess.run(["git", "clone", "--depth=1", repo_url], cwd=target, check=True)
    return glibc_dir


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gen-syscall-enum",
        description="Generate Linux syscall enum modules from glibc headers.",
    )
    parser.add_argument("--out-dir", type=Path, default=Path("."), help="where to write modules")
    parser.add_argument("--target-dir", type=Path, default=Path("target"), help="where to clone glibc")
    parser.add_argument("--glibc-dir", type=Path, help="use an existing glibc checkout")
    args = parser.parse_args(argv)

    dst_dir = args.out_dir.resolve(strict=True)
    glibc_dir = args.glibc_dir if args.glibc_dir is not None else fetch_glibc_sources(args.target_dir)

    for header, out_name in SYSCALL_SRC_DST:
        header_text = (glibc_dir / header).read_text(encoding="utf-8")
        write_syscall_module(dst_dir / out_name, get_syscall_list(header_text))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())