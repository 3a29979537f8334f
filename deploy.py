"""Trigger and watch the GitHub Actions workflow that publishes the static site."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import requests

import config

logger = logging.getLogger(__name__)


def _github_settings() -> Optional[Dict[str, str]]:
    if not config.GITHUB_TOKEN or not config.REPO_OWNER or not config.REPO_NAME:
        return None
    return {
        "repo_url": f"{config.GITHUB_API}/repos/{config.REPO_OWNER}/{config.REPO_NAME}",
        "headers": {
            "Authorization": f"token {config.GITHUB_TOKEN}",
            "Accept": "application/vnd.github.v3+json",
        },
    }


def trigger_workflow() -> Dict:
    """Dispatch the deploy workflow.

    Returns:
        dict with {success, run_id, error}
    """
    settings = _github_settings()
    if settings is None:
        return {
            "success": False,
            "run_id": None,
            "error": "GitHub settings incomplete: set PERSONAL_ACCESS_TOKEN, REPO_OWNER and REPO_NAME",
        }

    workflow_url = f"{settings['repo_url']}/actions/workflows/{config.DEPLOY_WORKFLOW}"
    try:
        resp = requests.post(
            f"{workflow_url}/dispatches",
            headers=settings["headers"],
            json={"ref": config.DEPLOY_REF, "inputs": {"build_static_site": "true"}},
            timeout=30,
        )
    except requests.RequestException as e:
        logger.error("Workflow dispatch failed: %s", e)
        return {"success": False, "run_id": None, "error": f"Workflow trigger error: {e}"}

    if resp.status_code != 204:
        return {
            "success": False,
            "run_id": None,
            "error": f"GitHub API error: {resp.status_code} - {resp.text}",
        }
    logger.info("Dispatched workflow %s on %s", config.DEPLOY_WORKFLOW, config.DEPLOY_REF)

    # The dispatch endpoint does not return a run id; the newest run is the best guess.
    run_id = None
    try:
        runs = requests.get(
            f"{workflow_url}/runs",
            headers=settings["headers"],
            params={"per_page": 1},
            timeout=15,
        )
        if runs.ok:
            workflow_runs = runs.json().get("workflow_runs") or []
            if workflow_runs:
                run_id = workflow_runs[0]["id"]
    except requests.RequestException as e:
        logger.warning("Could not look up the workflow run: %s", e)
    return {"success": True, "run_id": run_id, "error": ""}


def workflow_status(run_id: int) -> Dict:
    settings = _github_settings()
    if settings is None:
        return {"status": "unknown", "conclusion": None, "error": "GitHub settings incomplete"}
    try:
        resp = requests.get(
            f"{settings['repo_url']}/actions/runs/{run_id}",
            headers=settings["headers"],
            timeout=15,
        )
    except requests.RequestException as e:
        return {"status": "unknown", "conclusion": None, "error": f"Workflow status error: {e}"}
    if not resp.ok:
        return {
            "status": "unknown",
            "conclusion": None,
            "error": f"GitHub API error: {resp.status_code}",
        }
    data = resp.json()
    return {"status": data.get("status"), "conclusion": data.get("conclusion"), "error": ""}
