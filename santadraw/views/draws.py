from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for
from flask.views import MethodView

from ..draw import InvalidInput
from ..policies import DrawTokenMixin
from ..security import draw_passphrase
from ..services.assignments import AssignmentError
from ..services.draws import build_couples, build_roster, create_draw, find_participant, get_assignment, publish_draw


draws_bp = Blueprint("draws", __name__)


def _parse_couple_lines(text: str) -> list[list[str]]:
    """One couple per line, names joined by '+' (a comma also works)."""
    pairs = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        sep = "+" if "+" in line else ","
        pairs.append([part.strip() for part in line.split(sep)])
    return pairs


class CreateDrawView(MethodView):
    def get(self):
        return render_template("draws/create.html", form={})

    def post(self):
        form = {
            "organizer_name": (request.form.get("organizer_name") or "").strip(),
            "draw_name": (request.form.get("draw_name") or "").strip(),
            "participants": request.form.get("participants") or "",
            "couples": request.form.get("couples") or "",
        }

        try:
            roster = build_roster(form["participants"].splitlines())
            couples = build_couples(_parse_couple_lines(form["couples"]), roster)
            record = create_draw(
                form["organizer_name"],
                form["draw_name"],
                roster,
                couples,
                max_attempts=current_app.config["SANTA_MAX_ATTEMPTS"],
            )
            record, token = publish_draw(record, draw_passphrase())
        except (InvalidInput, AssignmentError) as e:
            flash(str(e), "error")
            return render_template("draws/create.html", form=form)

        current_app.logger.info("Created draw %s with %d participants", record.code, len(roster))
        return redirect(url_for("draws.share", token=token))


class ShareDrawView(DrawTokenMixin):
    def get(self, token: str, draw):
        access_url = url_for("draws.access", token=token, _external=True)
        base_url = current_app.config.get("SANTA_BASE_URL")
        if base_url:
            access_url = base_url.rstrip("/") + url_for("draws.access", token=token)
        return render_template("draws/share.html", draw=draw, access_url=access_url)


class AccessDrawView(DrawTokenMixin):
    def get(self, token: str, draw):
        return render_template("draws/access.html", draw=draw, token=token)

    def post(self, token: str, draw):
        name = (request.form.get("name") or "").strip()
        if not name:
            flash("Please enter your name.", "error")
            return render_template("draws/access.html", draw=draw, token=token)

        participant = find_participant(draw, name)
        if not participant:
            flash("That name is not on the participant list.", "error")
            return render_template("draws/access.html", draw=draw, token=token)

        return redirect(url_for("draws.reveal", token=token, participant_id=participant.id))


class RevealView(DrawTokenMixin):
    def get(self, token: str, participant_id: str, draw):
        result = get_assignment(draw, participant_id)
        if not result:
            abort(404)
        giver, receiver = result
        return render_template("draws/reveal.html", draw=draw, giver=giver, receiver=receiver)


draws_bp.add_url_rule("/create", view_func=CreateDrawView.as_view("create"), methods=["GET", "POST"])
draws_bp.add_url_rule("/share/<token>", view_func=ShareDrawView.as_view("share"))
draws_bp.add_url_rule("/access/<token>", view_func=AccessDrawView.as_view("access"), methods=["GET", "POST"])
draws_bp.add_url_rule("/reveal/<token>/<participant_id>", view_func=RevealView.as_view("reveal"))
