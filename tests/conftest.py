import sys
import os

# Add project root to sys.path so tests can import the top-level packages and main/web_app
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hypothesis import settings

# CI profile: longer sample sequences explored
settings.register_profile("ci", max_examples=300)
# Dev profile: quick local runs
settings.register_profile("dev", max_examples=100, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))
