from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask.views import MethodView

from ..services.draws import get_draw_token


public_bp = Blueprint("public", __name__)


class LandingView(MethodView):
    def get(self):
        return render_template("landing.html")


class CodeLookupView(MethodView):
    """
    Short-code entry for draws stored on this instance.
    """
    def get(self):
        return render_template("code.html")

    def post(self):
        code = (request.form.get("code") or "").strip().upper()
        if not code:
            flash("Please enter a draw code.", "error")
            return render_template("code.html")

        token = get_draw_token(code)
        if not token:
            flash("No draw with that code.", "error")
            return render_template("code.html", code=code)

        return redirect(url_for("draws.access", token=token))


public_bp.add_url_rule("/", view_func=LandingView.as_view("landing"))
public_bp.add_url_rule("/code", view_func=CodeLookupView.as_view("code"), methods=["GET", "POST"])
