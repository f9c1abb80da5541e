import os
import tempfile

# Logs and settings of a test run go to a throwaway folder instead of the user's data directory. Must happen before
# anything imports tt.common.setup.
os.environ.setdefault("TT_DATA_DIR", tempfile.mkdtemp(prefix="tt-tests-"))
