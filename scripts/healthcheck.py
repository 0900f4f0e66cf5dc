#!/usr/bin/env python3
"""
Environment health check.

Returns exit code 0 if the core modules import, the contracts directory
is present and both backend API keys are configured. Prints which keys
were found with masked prefixes.
"""

import json
import sys
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def main() -> int:
    try:
        import agents.coordinator  # noqa: F401
        import contracts.validator  # noqa: F401
        import state.machine  # noqa: F401
        from middleware.secrets import get_secrets_manager

        root = Path(__file__).resolve().parent.parent
        if not (root / "contracts" / "schemas").is_dir():
            print("Health check failed: contracts/schemas/ directory missing", file=sys.stderr)
            return 1

        secrets = get_secrets_manager()
        report = secrets.report()
        print(json.dumps(report, indent=2))

        missing = secrets.missing()
        if missing:
            print(f"Health check failed: missing {', '.join(missing)}", file=sys.stderr)
            return 1

        return 0
    except Exception as e:
        print(f"Health check failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
