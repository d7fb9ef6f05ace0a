"""
Check if PyTorch and the other required dependencies are available.

This script verifies the environment is ready for training and experiments.
"""
import sys


def check_dependency(name: str, import_path: str) -> tuple[bool, str]:
    """
    Check if a dependency is available.

    Args:
        name: Human-readable name
        import_path: Python import path

    Returns:
        (success, message): Status and version/error message
    """
    try:
        module = __import__(import_path)
        version = getattr(module, "__version__", "unknown")
        return True, f"v{version}"
    except ImportError as e:
        return False, str(e)


def main() -> bool:
    """
    Check all required dependencies.

    Returns:
        True if all dependencies available, False otherwise
    """
    print("=" * 70)
    print("aedetect Environment Check")
    print("=" * 70)

    dependencies = {
        "PyTorch": "torch",
        "NumPy": "numpy",
        "Pandas": "pandas",
        "Scikit-learn": "sklearn",
        "Pydantic": "pydantic",
        "PyYAML": "yaml",
        "Matplotlib": "matplotlib",
        "tqdm": "tqdm",
    }

    all_available = True

    for name, import_path in dependencies.items():
        success, message = check_dependency(name, import_path)
        all_available = all_available and success

        status = "OK " if success else "ERR"
        print(f"[{status}] {name:20s}: {message}")

    print("\n" + "=" * 70)

    if all_available:
        import torch

        print("ALL DEPENDENCIES AVAILABLE")
        print(f"CUDA available: {torch.cuda.is_available()}")
        return True
    else:
        print("MISSING DEPENDENCIES")
        print("\nTo install missing packages:")
        print("  pip install -e '.[test]'")
        return False


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
