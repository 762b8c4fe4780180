import html
from typing import Dict, List, Optional, Tuple

from .models import GroupRecord

REACTION_UNCHANGED = "🏆"

INACTIVE_NOTICES: Dict[str, str] = {
    "Deutsch": (
        "<i>Dieser Roboter ist nur für bestimmte Gruppen aktiv. "
        "Bitte wenden Sie sich an den Bot-Hersteller: {contact}</i>"
    ),
    "Englisch": (
        "<i>This bot is only active for selected groups. "
        "Please contact the bot administrator: {contact}</i>"
    ),
    "Spanisch": (
        "<i>Este bot solo está activo en grupos seleccionados. "
        "Por favor, contacte con el administrador del bot: {contact}</i>"
    ),
    "Französisch": (
        "<i>Ce bot n'est actif que pour certains groupes. "
        "Veuillez contacter l'administrateur du bot : {contact}</i>"
    ),
    "Persisch": "<i>این ربات فقط برای گروه‌های مشخصی فعال است. لطفاً با مدیر ربات تماس بگیرید: {contact}</i>",
    "Arabisch": "<i>هذا البوت مفعّل لمجموعات محددة فقط. يرجى التواصل مع مسؤول البوت: {contact}</i>",
}

CREDIT_DEPLETED_NOTICES: Dict[str, str] = {
    "Deutsch": (
        "<i>Das Guthaben Ihrer Gruppe ist aufgebraucht. Bitte laden Sie es auf, "
        "um den Bot weiter zu nutzen. Hilfe erhalten Sie beim Bot-Administrator: {contact}</i>"
    ),
    "Englisch": (
        "<i>Your group's credit has been depleted. Please recharge your account to continue "
        "using the bot. For assistance, contact the bot administrator: {contact}</i>"
    ),
    "Spanisch": (
        "<i>El crédito de su grupo se ha agotado. Recárguelo para seguir usando el bot. "
        "Para ayuda, contacte con el administrador del bot: {contact}</i>"
    ),
    "Französisch": (
        "<i>Le crédit de votre groupe est épuisé. Veuillez le recharger pour continuer "
        "à utiliser le bot. Pour toute aide, contactez l'administrateur du bot : {contact}</i>"
    ),
    "Persisch": "<i>اعتبار گروه شما تمام شده است. لطفاً برای ادامه استفاده از ربات آن را شارژ کنید. برای راهنمایی با مدیر ربات تماس بگیرید: {contact}</i>",
    "Arabisch": "<i>لقد نفد رصيد مجموعتكم. يرجى إعادة الشحن لمواصلة استخدام البوت. للمساعدة تواصلوا مع مسؤول البوت: {contact}</i>",
}

FAILURE_NOTICES: Dict[str, str] = {
    "Deutsch": "<i>Die Nachricht konnte gerade nicht bearbeitet werden. Bitte versuchen Sie es später erneut.</i>",
    "Englisch": "<i>The message could not be processed right now. Please try again later.</i>",
    "Spanisch": "<i>No se pudo procesar el mensaje en este momento. Inténtelo de nuevo más tarde.</i>",
    "Französisch": "<i>Le message n'a pas pu être traité pour le moment. Veuillez réessayer plus tard.</i>",
    "Persisch": "<i>در حال حاضر پردازش پیام ممکن نیست. لطفاً بعداً دوباره تلاش کنید.</i>",
    "Arabisch": "<i>تعذّرت معالجة الرسالة حالياً. يرجى المحاولة لاحقاً.</i>",
}

FALLBACK_LANGUAGE = "Englisch"


def _localized(notices: Dict[str, str], language: Optional[str]) -> str:
    if language:
        for key, text in notices.items():
            if key.casefold() == language.strip().casefold():
                return text
    return notices[FALLBACK_LANGUAGE]


def inactive_notice(language: Optional[str], contact: str) -> str:
    return _localized(INACTIVE_NOTICES, language).format(contact=html.escape(contact))


def credit_depleted_notice(language: Optional[str], contact: str) -> str:
    return _localized(CREDIT_DEPLETED_NOTICES, language).format(contact=html.escape(contact))


def failure_notice(language: Optional[str]) -> str:
    return _localized(FAILURE_NOTICES, language)


def format_author(username: Optional[str], first_name: Optional[str], last_name: Optional[str]) -> str:
    if username:
        return f"@{username}"
    return " ".join(part for part in (first_name, last_name) if part).strip()


def render_correction(author: str, text: str) -> str:
    safe_author = html.escape(author, quote=False)
    safe_text = html.escape(text, quote=False)
    return f"<i>{safe_author}</i> 🗨️: <blockquote><i>{safe_text}</i></blockquote>"


def render_group_list(groups: List[Tuple[str, GroupRecord]]) -> str:
    if not groups:
        return "No groups registered."
    lines = ["<b>Groups</b>\n"]
    for group_id, record in groups:
        status = "active" if record.is_active else "inactive"
        lines.append(
            f"<code>{html.escape(group_id)}</code> • {html.escape(record.name)} • "
            f"{html.escape(record.language)} • {status} • "
            f"credit {record.credit_used:.4f}/{record.credit_purchased:.4f} • "
            f"since {record.created_at:%Y-%m-%d}"
        )
    return "\n".join(lines)


OPERATOR_HELP = (
    "<b>Operator commands</b>\n\n"
    "/groups - list groups\n"
    "/addgroup &lt;id&gt; &lt;language&gt; &lt;name&gt; - register a group\n"
    "/removegroup &lt;id&gt; - delete a group\n"
    "/rename &lt;id&gt; &lt;name&gt; - rename a group\n"
    "/setlang &lt;id&gt; &lt;language&gt; - set the target language\n"
    "/activate &lt;id&gt; - enable processing\n"
    "/deactivate &lt;id&gt; - disable processing\n"
    "/addcredit &lt;id&gt; &lt;amount&gt; - add purchased credit"
)

ERROR_MESSAGES = {
    "not_operator": "This command is restricted to bot operators.",
    "usage": "Usage: {usage}",
    "not_found": "Group not found: {group_id}",
    "invalid": "Invalid input: {detail}",
    "unsupported_language": "Unsupported language. Choose one of: {languages}",
    "store": "Storage is unavailable right now. Please try again later.",
    "config_missing": "BOT_TOKEN is missing. Please set BOT_TOKEN in .env.",
}

BOT_COMMANDS = [
    ("help", "Show operator commands (operators)."),
    ("groups", "List registered groups (operators)."),
    ("addgroup", "Register a group (operators)."),
    ("removegroup", "Delete a group (operators)."),
    ("rename", "Rename a group (operators)."),
    ("setlang", "Set a group's language (operators)."),
    ("activate", "Enable a group (operators)."),
    ("deactivate", "Disable a group (operators)."),
    ("addcredit", "Add credit to a group (operators)."),
]
