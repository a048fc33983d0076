"""
Test Helpers
============

Fake toolchain used in place of pdflatex, pdfcrop and pdftoppm.

Each fake is a small executable Python script that records its invocation
and imitates the real tool closely enough for the pipeline: pdflatex writes
``document.pdf``, pdfcrop copies it, pdftoppm writes ``<prefix>-1.png``.
"""

import io
import os
import shutil
import stat
import sys
from pathlib import Path
from typing import Dict, List

import pytest
from PIL import Image

_HEADER = """#!{python}
import os
import pathlib
import shutil
import sys
import time

CALLS = {calls!r}
PIDS = {pids!r}
PAGE = {page!r}

with open(CALLS, "a") as log:
    log.write(" ".join([{name!r}] + sys.argv[1:]) + "\\n")
"""

_PDFLATEX = r'''
source = pathlib.Path(sys.argv[-1]).read_text()
if "FAKE:SLOW" in source:
    with open(PIDS, "a") as pids:
        pids.write(f"{os.getpid()}\n")
    time.sleep(30)
if "\\undefinedcommand" in source:
    print("! Undefined control sequence.")
    print("l.3 \\undefinedcommand")
    sys.exit(1)
if "FAKE:NO-OUTPUT" in source:
    sys.exit(0)
pages = source.count("\\newpage") + 1
pathlib.Path(sys.argv[-1]).with_suffix(".pdf").write_text(f"%PDF-1.4 pages={pages}\n")
print(f"Output written on document.pdf ({pages} page).")
'''

_PDFCROP = r'''
shutil.copyfile(sys.argv[1], sys.argv[2])
print(f"==> 1 page written on `{sys.argv[2]}'.")
'''

_PDFTOPPM = r'''
prefix = sys.argv[-1]
pages = int(pathlib.Path(sys.argv[-2]).read_text().split("pages=")[1].split()[0])
shutil.copyfile(PAGE, f"{prefix}-1.png")
for page in range(2, pages + 1):
    pathlib.Path(f"{prefix}-{page}.png").write_bytes(b"not the first page")
'''


def make_png(width: int = 120, height: int = 40) -> bytes:
    """Create PNG bytes of the given size."""
    output = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(output, format="PNG")
    return output.getvalue()


class FakeToolchain:
    """Executable stand-ins for the TeX and poppler tools."""

    def __init__(self, root: Path, page_png: bytes):
        self.root = root
        self.bin_dir = root / "bin"
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        self.calls_file = root / "calls.log"
        self.pids_file = root / "pids.log"
        self.page_file = root / "page.png"
        self.page_file.write_bytes(page_png)
        self.page_png = page_png

        self.pdflatex = self._write_tool("pdflatex", _PDFLATEX)
        self.pdfcrop = self._write_tool("pdfcrop", _PDFCROP)
        self.pdftoppm = self._write_tool("pdftoppm", _PDFTOPPM)

    def _write_tool(self, name: str, body: str) -> Path:
        path = self.bin_dir / name
        header = _HEADER.format(
            python=sys.executable,
            calls=str(self.calls_file),
            pids=str(self.pids_file),
            page=str(self.page_file),
            name=name,
        )
        path.write_text(header + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    def fail_tool(self, name: str, message: str, status: int = 1) -> None:
        """Make a tool print a message and exit with the given status."""
        self._write_tool(name, f"\nprint({message!r})\nsys.exit({status})\n")

    def settings_overrides(self) -> Dict[str, str]:
        """Settings fields pointing the pipeline at the fakes."""
        return {
            "pdflatex_command": str(self.pdflatex),
            "pdfcrop_command": str(self.pdfcrop),
            "pdftoppm_command": str(self.pdftoppm),
        }

    def invocations(self) -> List[List[str]]:
        """Every recorded invocation as [tool, *args]."""
        if not self.calls_file.exists():
            return []
        return [line.split(" ") for line in self.calls_file.read_text().splitlines() if line]

    def calls(self) -> List[str]:
        """Names of the tools invoked, in order."""
        return [invocation[0] for invocation in self.invocations()]

    def started_pids(self) -> List[int]:
        """PIDs recorded by slow fake pdflatex runs."""
        if not self.pids_file.exists():
            return []
        return [int(line) for line in self.pids_file.read_text().splitlines() if line]


def process_exists(pid: int) -> bool:
    """Whether a process with this PID is still present."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


requires_toolchain = pytest.mark.skipif(
    not all(shutil.which(tool) for tool in ("pdflatex", "pdfcrop", "pdftoppm")),
    reason="pdflatex, pdfcrop and pdftoppm are not installed",
)
