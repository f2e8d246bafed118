import sys
import os

# Project root, so that tests import the code as src.<package>.<module>
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

sys.path.insert(0, PROJECT_ROOT)
