"""HTML email bodies sent to organisers of newly popular sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Any, Callable, Dict, Mapping

from engagement.domain.errors import TemplateNotFoundError

POPULAR_SESSION = "popular_session"


@dataclass(frozen=True)
class RenderedEmail:
	subject: str
	html: str


def _wrap(title: str, inner: str, service_name: str) -> str:
	year = datetime.now().year
	return f"""
	<html>
		<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; color: #1f1a38; background-color: #f4f6f9;">
			<div style="max-width: 560px; margin: 0 auto; padding: 24px; background-color: #ffffff;">
				<h2 style="color: #2d2a8d; margin-bottom: 16px;">{escape(title)}</h2>
				{inner}
				<p style="color: #999; font-size: 12px; margin-top: 32px;">&copy; {year} {escape(service_name)}</p>
			</div>
		</body>
	</html>
	"""


def _popular_session(data: Mapping[str, Any]) -> RenderedEmail:
	service_name = str(data.get("service_name") or "Friendship")
	session_title = escape(str(data.get("session_title") or ""))
	group_name = escape(str(data.get("group_name") or ""))
	start = data.get("start_time")
	start_label = start.strftime("%d %b %Y, %H:%M") if isinstance(start, datetime) else escape(str(start or ""))
	action_url = escape(str(data.get("action_url") or ""), quote=True)
	inner = f"""
				<p>Great news! Your session <strong>{session_title}</strong> is now one of the most popular on {escape(service_name)}.</p>
				<div style="border-left: 4px solid #3b2e7a; padding: 8px 16px; margin: 16px 0; background-color: #f7f5ff;">
					<p><strong>Session:</strong> {session_title}</p>
					<p><strong>Group:</strong> {group_name}</p>
					<p><strong>Starts:</strong> {start_label}</p>
				</div>
				<p>Popular sessions are featured on the home page and ranked higher in search.</p>
				<p style="margin: 24px 0;">
					<a href="{action_url}"
					   style="display: inline-block; background-color: #3b2e7a; color: white; padding: 12px 24px; text-decoration: none; border-radius: 8px; font-weight: 600;">
						View session
					</a>
				</p>
				<ul style="font-size: 14px; color: #555; line-height: 1.8;">
					<li>Answer participants' questions promptly</li>
					<li>Keep the session details up to date</li>
				</ul>
	"""
	return RenderedEmail(
		subject=f"Your session \"{data.get('session_title') or ''}\" is popular!",
		html=_wrap("Congratulations!", inner, service_name),
	)


_TEMPLATES: Dict[str, Callable[[Mapping[str, Any]], RenderedEmail]] = {
	POPULAR_SESSION: _popular_session,
}


def render(template_id: str, data: Mapping[str, Any]) -> RenderedEmail:
	try:
		builder = _TEMPLATES[template_id]
	except KeyError:
		raise TemplateNotFoundError(f"template_not_found:{template_id}") from None
	return builder(data)
