import os
import re
from pathlib import Path

SECRET_VARS = {"ANTHROPIC_API_KEY", "OPENAI_API_KEY"}


def find_env_vars(package_dir: str = "workflowgen"):
    """Find all environment variables the settings layer reads."""
    env_vars = set()
    for py_file in Path(package_dir).rglob("*.py"):
        content = py_file.read_text(encoding="utf-8", errors="ignore")
        env_vars.update(re.findall(r'alias=["\']([A-Z0-9_]+)["\']', content))
        env_vars.update(re.findall(r'os\.getenv\(["\']([A-Z0-9_]+)["\']', content))
    return sorted(env_vars)


def verify_environment():
    code_vars = find_env_vars()
    unset = [v for v in code_vars if not os.getenv(v)]
    missing_keys = sorted(SECRET_VARS & set(unset))

    print("=== ENV VAR VERIFICATION ===")
    print(f"Settings reference: {len(code_vars)} unique vars")
    print(f"Set in environment: {len(code_vars) - len(unset)}")
    print("")
    if unset:
        print(f"UNSET, USING DEFAULTS ({len(unset)}):")
        for v in unset:
            print(f"  - {v}")
    else:
        print("Every referenced var is set.")
    print("")
    if len(missing_keys) == len(SECRET_VARS):
        print("No provider API key is set: generation requests will fail with a configuration error.")


if __name__ == "__main__":
    verify_environment()
