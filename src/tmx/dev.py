"""Dev mode: restart tmx whenever a source file changes."""

import subprocess
import sys
from pathlib import Path


def main() -> None:
    src = Path(__file__).resolve().parent.parent
    try:
        subprocess.run(
            [sys.executable, "-m", "watchfiles", "--filter", "python", "tmx.app.main", str(src)],
            check=True,
        )
    except KeyboardInterrupt:
        pass
    except subprocess.CalledProcessError as exc:
        sys.exit(exc.returncode)
