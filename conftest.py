# Make `import cors_proxy` resolve to this checkout when pytest runs from the
# repository root without the package being installed.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
