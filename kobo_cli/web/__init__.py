"""
Web Scraping Layer.

This package contains modules for reading the Kobo sign-in page and
evaluating the scripts it serves.
"""

from .script_engine import QuickJsEvaluator
from .signin_page import build_login_script, extract_login_parameters

__all__ = ["QuickJsEvaluator", "build_login_script", "extract_login_parameters"]
