import sys
from pathlib import Path

# Make the top-level packages (engine, providers, stacks, ...) importable
# without an editable install.
ROOT_DIR = Path(__file__).parent.absolute()

if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
