"""Dump a JSON description of the running interpreter between two cookies."""

# runs under arbitrary target interpreters: standard library only, no modern syntax
import json
import sys


def _run():
    argv = sys.argv[1:]
    start_cookie = argv[0] if len(argv) >= 1 else ""
    end_cookie = argv[1] if len(argv) >= 2 else ""  # noqa: PLR2004
    info = {
        "versionInfo": list(sys.version_info),
        "sysPrefix": sys.prefix,
        "sysBasePrefix": getattr(sys, "base_prefix", getattr(sys, "real_prefix", sys.prefix)),
        "version": sys.version,
        "is64Bit": sys.maxsize > 2**32,
        "executable": sys.executable,
    }
    sys.stdout.write("".join((start_cookie[::-1], json.dumps(info), end_cookie[::-1])))


if __name__ == "__main__":
    _run()
