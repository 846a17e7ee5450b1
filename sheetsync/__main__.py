from __future__ import annotations

from sheetsync.entrypoints.cli import main

# Uncaught errors go through the crash hook that main() installs.
raise SystemExit(main())
