from __future__ import annotations

import logging
from typing import Dict, Optional

import click
from flask import (
    Flask,
    abort,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_cors import cross_origin

import articles
import auth
import config
import deploy
import sitegen
from articles import ArticleError, ArticleNotFound


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY

SUCCESS_MESSAGES = {
    "created": "Article created",
    "updated": "Article updated",
    "deleted": "Article deleted",
}
PUBLIC_LIST_LIMIT = 100


def blank_article() -> Dict:
    return {
        "id": "",
        "title": "",
        "slug": "",
        "pub_date": articles.now_iso(),
        "category": "",
        "tags": [],
        "body": "",
    }


def form_data() -> Dict:
    tags = request.form.getlist("tags[]") or request.form.get("tags", "")
    return {
        "title": request.form.get("title", "").strip(),
        "slug": request.form.get("slug", "").strip(),
        "body": request.form.get("body", ""),
        "category": request.form.get("category", "").strip(),
        "tags": articles.parse_tags(tags),
        "pub_date": request.form.get("pub_date", "").strip() or None,
    }


def drop_stale_page(previous: Dict, current: Optional[Dict] = None) -> None:
    if current is None or current["slug"] != previous["slug"]:
        sitegen.remove_article_page(previous["slug"])


@app.context_processor
def inject_globals():
    return {
        "site_title": config.SITE_TITLE,
        "format_date": sitegen.format_date,
        "render_markdown": sitegen.render_markdown,
        "is_authenticated": auth.is_authenticated,
        "current_user": auth.current_user,
    }


@app.errorhandler(ArticleError)
def article_error(exc: ArticleError):
    if request.path.startswith("/api/"):
        response = jsonify({"error": str(exc)})
        if request.path.startswith("/api/public/"):
            response.headers["Access-Control-Allow-Origin"] = "*"
        return response, exc.status_code
    flash(str(exc), "error")
    return redirect(url_for("admin_articles"))


@app.route("/")
@auth.login_required
def dashboard():
    _, total = articles.get_articles(limit=1)
    return render_template(
        "admin_dashboard.html",
        total=total,
        categories=articles.list_categories(),
        tags=articles.list_tags(),
        last_build=sitegen.last_build(),
    )


@app.route("/login", methods=["GET", "POST"])
def login():
    try:
        auth.initialize_admin_user()
    except auth.AuthConfigError as exc:
        flash(str(exc), "error")
        return render_template("admin_login.html"), 500

    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        if not username or not password:
            flash("Enter a username and password", "error")
            return render_template("admin_login.html"), 400
        user = auth.authenticate_user(username, password)
        if not user:
            app.logger.warning("Failed login for %s", username)
            flash("Invalid credentials", "error")
            return render_template("admin_login.html"), 401

        auth.cleanup_expired_sessions()
        session = auth.create_session(user)
        target = request.args.get("next") or url_for("admin_articles")
        if not target.startswith("/") or target.startswith("//"):
            target = url_for("admin_articles")
        response = redirect(target)
        return auth.set_session_cookie(response, session["id"])

    if auth.is_authenticated():
        return redirect(url_for("admin_articles"))
    return render_template("admin_login.html")


@app.route("/logout")
def logout():
    auth.delete_session(request.cookies.get(config.SESSION_COOKIE))
    flash("Logged out", "success")
    return auth.clear_session_cookie(redirect(url_for("login")))


@app.route("/articles")
@auth.login_required
def admin_articles():
    page = max(request.args.get("page", 1, type=int), 1)
    limit = max(request.args.get("limit", 10, type=int), 1)
    category = request.args.get("category") or None
    tag = request.args.get("tag") or None
    items, total = articles.get_articles(page, limit, category, tag)
    total_pages = max((total + limit - 1) // limit, 1)
    return render_template(
        "admin_articles.html",
        articles=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        category=category,
        tag=tag,
        success=SUCCESS_MESSAGES.get(request.args.get("success", "")),
    )


@app.route("/articles/new", methods=["GET", "POST"])
@auth.login_required
def admin_new_article():
    if request.method == "POST":
        return handle_article_save()
    return render_template("admin_edit.html", article=blank_article(), is_new=True)


@app.route("/articles/<article_id>")
@auth.login_required
def admin_article(article_id: str):
    article = articles.get_article(article_id)
    if not article:
        abort(404)
    return render_template("admin_article.html", article=article)


@app.route("/articles/<article_id>/edit", methods=["GET", "POST"])
@auth.login_required
def admin_edit_article(article_id: str):
    article = articles.get_article(article_id)
    if not article:
        abort(404)
    if request.method == "POST":
        return handle_article_save(existing=article)
    return render_template("admin_edit.html", article=article, is_new=False)


@app.route("/articles/<article_id>/delete", methods=["POST"])
@auth.login_required
def admin_delete_article(article_id: str):
    article = articles.delete_article(article_id)
    drop_stale_page(article)
    return redirect(url_for("admin_articles", success="deleted"))


def handle_article_save(existing: Optional[Dict] = None):
    data = form_data()
    try:
        if existing:
            article = articles.update_article(existing["id"], data)
        else:
            article = articles.create_article(data)
    except (articles.ValidationError, articles.SlugConflict) as exc:
        flash(str(exc), "error")
        draft = dict(existing or blank_article())
        draft.update({key: value for key, value in data.items() if value is not None})
        return (
            render_template("admin_edit.html", article=draft, is_new=not existing),
            exc.status_code,
        )

    if existing:
        drop_stale_page(existing, article)
        return redirect(url_for("admin_articles", success="updated"))
    return redirect(url_for("admin_articles", success="created"))


# JSON API


def list_response(default_limit: int):
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", default_limit, type=int)
    items, total = articles.get_articles(
        page,
        limit,
        category=request.args.get("category") or None,
        tag=request.args.get("tag") or None,
    )
    return jsonify({"articles": items, "total": total, "page": page, "limit": limit})


def json_body() -> Dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise articles.ValidationError("Request body must be a JSON object")
    return body


@app.route("/api/articles", methods=["GET", "POST"])
@auth.login_required
def api_articles():
    if request.method == "POST":
        article = articles.create_article(json_body())
        return jsonify({"message": "Article created", "article": article}), 201
    return list_response(default_limit=10)


@app.route("/api/articles/<article_id>", methods=["GET", "PUT", "DELETE"])
@auth.login_required
def api_article(article_id: str):
    if request.method == "PUT":
        previous = articles.get_article(article_id)
        article = articles.update_article(article_id, json_body())
        drop_stale_page(previous, article)
        return jsonify({"message": "Article updated", "article": article})
    if request.method == "DELETE":
        article = articles.delete_article(article_id)
        drop_stale_page(article)
        return jsonify({"message": "Article deleted"})

    article = articles.get_article(article_id)
    if not article:
        raise ArticleNotFound("Article not found")
    return jsonify(article)


@app.route("/api/build", methods=["GET", "POST"])
@auth.login_required
def api_build():
    if request.method == "GET":
        return build_status()

    options = request.get_json(silent=True)
    if not isinstance(options, dict):
        options = {}
    app.logger.info("Build requested: %s", options)
    if options.get("trigger_github_actions"):
        result = deploy.trigger_workflow()
        if not result["success"]:
            return (
                jsonify(
                    {
                        "success": False,
                        "message": "Failed to trigger the GitHub Actions workflow",
                        "error": result["error"],
                    }
                ),
                500,
            )
        run_id = result["run_id"]
        return jsonify(
            {
                "success": True,
                "message": "GitHub Actions workflow triggered",
                "workflowRunId": str(run_id) if run_id else None,
            }
        )

    try:
        result = sitegen.build_site()
    except Exception as exc:
        app.logger.exception("Static build failed")
        return (
            jsonify({"success": False, "message": "Build failed", "error": str(exc)}),
            500,
        )
    return jsonify(
        {
            "success": True,
            "message": "Build finished",
            "buildTime": result["build_time_ms"],
            "generatedPages": result["generated_pages"],
            "removedPages": result["removed_pages"],
        }
    )


def build_status():
    run_id = request.args.get("runId")
    if run_id:
        try:
            run_id_num = int(run_id)
        except ValueError:
            return (
                jsonify(
                    {
                        "success": False,
                        "message": "Invalid workflow run id",
                        "error": "Invalid run ID",
                    }
                ),
                400,
            )
        status = deploy.workflow_status(run_id_num)
        return jsonify(
            {
                "success": True,
                "message": "Fetched workflow status",
                "workflowStatus": status["status"],
                "workflowConclusion": status["conclusion"],
                "workflowError": status["error"] or None,
            }
        )

    last = sitegen.last_build()
    return jsonify(
        {
            "success": True,
            "message": "Fetched build status",
            "generatedPages": sitegen.count_generated_pages(),
            "lastBuildTime": last["built_at"] if last else None,
        }
    )


@app.route("/api/public/articles", methods=["GET"])
@cross_origin(
    origins="*", methods=["GET"], allow_headers=["Content-Type"], send_wildcard=True
)
def api_public_articles():
    return list_response(default_limit=PUBLIC_LIST_LIMIT)


# CLI


@app.cli.command("init-admin")
def init_admin_command():
    """Create the admin user from ADMIN_USERNAME / ADMIN_PASSWORD."""
    user = auth.initialize_admin_user()
    click.echo(f"Admin user: {user['username']}")


@app.cli.command("build-site")
def build_site_command():
    """Render all articles into the static site directory."""
    result = sitegen.build_site()
    click.echo(
        f"Built {result['generated_pages']} pages "
        f"({result['removed_pages']} stale removed) in {result['build_time_ms']}ms"
    )


@app.cli.command("cleanup-sessions")
def cleanup_sessions_command():
    """Delete expired login sessions."""
    click.echo(f"Removed {auth.cleanup_expired_sessions()} expired sessions")


@app.cli.command("reindex")
def reindex_command():
    """Rebuild slug, category and tag indexes from stored articles."""
    click.echo(f"Reindexed {articles.reindex()} articles")


if __name__ == "__main__":
    app.run(debug=True)
