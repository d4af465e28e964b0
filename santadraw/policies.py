from __future__ import annotations

from flask import current_app, flash, redirect, url_for
from flask.views import MethodView

from .security import DecodeFailure, decode_draw, draw_passphrase


INVALID_LINK_MESSAGE = "This draw link is invalid or corrupted."


class DrawTokenMixin(MethodView):
    """
    Decodes the `token` URL segment before dispatch and hands the DrawRecord
    to the handler as `draw`. Undecodable links go back to the landing page.
    """
    def dispatch_request(self, *args, **kwargs):
        token = kwargs.get("token", "")
        try:
            kwargs["draw"] = decode_draw(token, draw_passphrase())
        except DecodeFailure:
            current_app.logger.info("Rejected undecodable draw token")
            flash(INVALID_LINK_MESSAGE, "error")
            return redirect(url_for("public.landing"))
        return super().dispatch_request(*args, **kwargs)
