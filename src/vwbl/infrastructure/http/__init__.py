"""Public HTTP reads."""
