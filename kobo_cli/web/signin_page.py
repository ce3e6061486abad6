"""
Parses the HTML pages of the web sign-in flow.

The sign-in page carries a workflow id and an anti-forgery token inside
its sign-in form. The page returned after posting the credentials
navigates away with inline scripts; those scripts are combined into one
program whose value is the destination they try to navigate to.
"""

import logging

from bs4 import BeautifulSoup

from kobo_cli.exceptions import LoginFlowError

log = logging.getLogger(__name__)

_FORM_SELECTOR = "section#defaultOptions form:has(#signInBlock)"
_WORKFLOW_ID_SELECTOR = 'input[name="LogInModel.WorkflowId"]'
_TOKEN_SELECTOR = 'input[name="__RequestVerificationToken"]'

_SCRIPT_PRELUDE = "var location={};\n"
_SCRIPT_RESULT = "location.href"


def _input_value(form, selector: str) -> str | None:
    field = form.select_one(selector)
    if field is None:
        return None
    return field.get("value") or None


def extract_login_parameters(html: str) -> tuple[str, str]:
    """
    Extracts the workflow id and verification token from the sign-in page.

    Raises:
        LoginFlowError: If the form or either value is missing or empty.
    """
    soup = BeautifulSoup(html, "html.parser")
    form = soup.select_one(_FORM_SELECTOR)
    if form is None:
        raise LoginFlowError("Could not find the sign-in form on the sign-in page.")

    workflow_id = _input_value(form, _WORKFLOW_ID_SELECTOR)
    if workflow_id is None:
        raise LoginFlowError("The sign-in form has no workflow id.")
    token = _input_value(form, _TOKEN_SELECTOR)
    if token is None:
        raise LoginFlowError("The sign-in form has no verification token.")

    log.debug("Extracted sign-in workflow id and verification token")
    return workflow_id, token


def build_login_script(html: str) -> str:
    """
    Combines every inline script of a page into one program.

    A stub `location` object absorbs navigation attempts, each script runs
    inside its own try block, and the program ends with the navigation
    target as its completion value.
    """
    soup = BeautifulSoup(html, "html.parser")
    parts = [_SCRIPT_PRELUDE]
    for script in soup.find_all("script"):
        parts.append("try{\n")
        for text in script.find_all(string=True):
            parts.append(f"{text}\n")
        parts.append("}catch(____e){}\n")
    parts.append(_SCRIPT_RESULT)
    log.debug(f"Built sign-in script from {len(parts) - 2} fragments")
    return "".join(parts)
