"""HTTP route handlers for the release orchestrator web API."""

from flask import Blueprint, jsonify, request

from release_orchestrator.config import config_exists
from release_orchestrator.devops_client import AuthenticationError, RateLimitError
from release_orchestrator.devops_client import ConnectionError as DevOpsConnectionError
from release_orchestrator.exceptions import ConfigNotFoundError, InvalidConfigError
from release_orchestrator.releases import (
    batch_result_to_dict,
    get_config,
    integration_build_version,
    load_repositories,
    run_release_batch,
    stamp_integration_build,
)
from release_orchestrator.versioning import next_version

bp = Blueprint("main", __name__)

_BUMP_KINDS = ("major", "minor")


@bp.errorhandler(ConfigNotFoundError)
@bp.errorhandler(InvalidConfigError)
@bp.errorhandler(DevOpsConnectionError)
def _service_unavailable(e):
    return jsonify({"error": str(e)}), 503


@bp.errorhandler(AuthenticationError)
def _unauthorized(e):
    return jsonify({"error": str(e)}), 401


@bp.errorhandler(RateLimitError)
def _rate_limited(e):
    return jsonify({"error": str(e)}), 429


@bp.route("/health")
def health():
    """Health check endpoint."""
    config_loaded = config_exists()
    if config_loaded:
        return jsonify({"status": "ok", "config_loaded": True})
    else:
        return jsonify({
            "status": "error",
            "config_loaded": False,
            "message": "Configuration not found",
        }), 503


@bp.route("/api/repositories")
def api_repositories():
    """List configured repositories with their current and next versions."""
    repositories = load_repositories()
    payload = []
    for repo in repositories:
        current = repo.current_version if repo.has_prior_release else None
        payload.append({
            "name": repo.name,
            "current_version": repo.version_label,
            "next_versions": {kind: str(next_version(current, kind)) for kind in _BUMP_KINDS},
        })
    return jsonify(payload)


@bp.route("/api/releases", methods=["POST"])
def api_releases():
    """Release the requested repositories.

    Expects ``{"repositories": [{"name": "Api", "bump": "minor"}, ...]}``.
    """
    data = request.get_json(silent=True) or {}
    requested = data.get("repositories") or []
    if not requested:
        return jsonify({"error": "At least one repository is required."}), 400

    bumps: dict[str, str] = {}
    for entry in requested:
        name = str(entry.get("name") or "").strip() if isinstance(entry, dict) else ""
        bump = entry.get("bump", "minor") if isinstance(entry, dict) else None
        if not name:
            return jsonify({"error": "Every repository needs a name."}), 400
        if bump not in _BUMP_KINDS:
            return jsonify({"error": f"Invalid bump type for {name}: {bump!r}"}), 400
        bumps[name] = bump

    repositories = load_repositories(list(bumps))
    for repo in repositories:
        repo.bump = bumps[repo.name]

    result = run_release_batch(repositories)
    response = batch_result_to_dict(result)
    response["integration_build"] = integration_build_version(
        result.results, repositories, get_config().main_repository
    )
    return jsonify(response)


@bp.route("/api/work-items/integration-build", methods=["POST"])
def api_stamp_integration_build():
    """Write the integration build label onto exported work items.

    Expects ``{"ids": [100, 200], "build": "1.4"}``.
    """
    data = request.get_json(silent=True) or {}
    build = str(data.get("build", "")).strip()
    try:
        ids = [int(i) for i in data.get("ids") or []]
    except (TypeError, ValueError):
        return jsonify({"error": "Work item ids must be integers."}), 400
    if not ids or not build:
        return jsonify({"error": "Work item ids and a build label are required."}), 400

    failed = stamp_integration_build(ids, build)
    return jsonify({"updated": len(ids) - len(failed), "failed": failed})
