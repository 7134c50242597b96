from __future__ import annotations

"""User-facing chat texts.

Replies are sent to WhatsApp/Telegram users, so they are written in Spanish
and use the chat platforms' ``*bold*`` and ``_italic_`` markup.
"""

from typing import Optional, Sequence

from .schemas.domain import Document, Pipeline, PipelineStatus, Platform

CHAT_MAX_LENGTH = 4000
CHAT_TRUNCATE_AT = 3900
TRUNCATION_NOTE = "\n\n_(Respuesta truncada. Ver detalles en cerebrin.app)_"
COMPLETION_MAX_LENGTH = 3000

_TASK_STATUS_EMOJI = {
    "pending": "⬜",
    "in_progress": "🔵",
    "done": "✅",
    "failed": "❌",
    "cancelled": "⛔",
}


def excerpt(text: str, limit: int) -> str:
    return text[:limit]


def onboarding(platform: Platform) -> str:
    channel = "Telegram" if platform is Platform.telegram else "WhatsApp"
    return (
        "👋 ¡Hola! No encontré tu cuenta en Cerebrin.\n\n"
        f"Para empezar, regístrate en https://cerebrin.app y vincula tu {channel} en Configuración.\n\n"
        '¿Necesitas ayuda? Escribe *"ayuda"*.'
    )


def workspace_setup() -> str:
    return "⚠️ No tienes un workspace configurado. Completa el onboarding en https://cerebrin.app primero."


def pipeline_in_progress(pipeline: Pipeline, role_name: str) -> str:
    return (
        "⏳ Ya tienes un pipeline en progreso:\n\n"
        f"📋 _{excerpt(pipeline.request_text, 80)}_\n\n"
        f"{role_name} está trabajando...\n\n"
        'Escribe *"estado"* para ver el progreso.'
    )


def pipeline_accepted(agent_name: str, text: str) -> str:
    return (
        f"🧠 *{agent_name}* — Entendido!\n\n"
        "Estoy creando un plan para:\n"
        f'_"{excerpt(text, 120)}"_\n\n'
        "⏳ Descomponiendo en tareas..."
    )


def status_summary(
    agent_name: str,
    *,
    pending_tasks: int,
    pending_approvals: int,
    active_pipeline: Optional[Pipeline] = None,
) -> str:
    lines = [f"📊 *Estado de {agent_name}*", ""]
    if active_pipeline is not None:
        lines += [f"🔄 *Pipeline activo:* _{excerpt(active_pipeline.request_text, 80)}_", ""]
    lines += [
        f"📋 *Tareas pendientes:* {pending_tasks}",
        "",
        f"⏳ *Aprobaciones pendientes:* {pending_approvals}",
        "",
        '💡 Escribe *"tareas"* para ver todas o *"aprobar"* para revisar pendientes.',
    ]
    return "\n".join(lines)


def no_pending_approvals() -> str:
    return "✅ No tienes aprobaciones pendientes. ¡Todo al día!"


def approved(title: str, *, pipeline_bound: bool = False) -> str:
    text = f"✅ *Aprobado:* {title}"
    if pipeline_bound:
        text += "\n\n🚀 Continuando con el pipeline..."
    return text


def rejected(title: str) -> str:
    return f"🚫 *Rechazado:* {title}"


def already_resolved() -> str:
    return "ℹ️ Esa aprobación ya fue resuelta."


def task_list(tasks: Sequence[Document]) -> str:
    rows = "\n".join(
        f"{i}. {_TASK_STATUS_EMOJI.get(task.status, '⬜')} {task.title}" for i, task in enumerate(tasks, start=1)
    )
    return (
        "📋 *Tus tareas (últimas 10):*\n\n"
        f"{rows or '✅ No tienes tareas'}\n\n"
        "💡 Para crear una nueva tarea, simplemente descríbela."
    )


def help_menu(agent_name: str) -> str:
    return (
        f"🧠 *{agent_name} — Comandos disponibles:*\n\n"
        "📊 *estado* — Ver estado actual del agente\n"
        "📋 *tareas* — Ver tus tareas pendientes\n"
        "✅ *aprobar* — Aprobar el resultado pendiente\n"
        "🚫 *rechazar* — Rechazar el resultado pendiente\n"
        "❓ *ayuda* — Ver este menú\n\n"
        "*Para solicitar algo nuevo:*\n"
        "Simplemente escribe lo que necesitas. Por ejemplo:\n"
        '_"Necesito un informe sobre tendencias de IA en Chile"_\n\n'
        "El agente creará un proyecto con tareas especializadas y te informará del progreso. 🚀"
    )


def media_saved(filename: Optional[str], caption: str) -> str:
    text = f"✅ Documento recibido y guardado:\n📄 *{filename or 'Archivo'}*"
    if caption:
        text += f"\n\n📝 _{caption}_"
    return text


def chat_error() -> str:
    return "Lo siento, hubo un error procesando tu mensaje. Intenta de nuevo en un momento."


def budget_exceeded(reason: str) -> str:
    return (
        "💸 Alcanzaste el límite de uso de tu workspace para este periodo.\n\n"
        f"_{reason}_\n\n"
        "Ajusta tu presupuesto en https://cerebrin.app para continuar."
    )


def truncate_reply(text: str) -> str:
    if len(text) > CHAT_MAX_LENGTH:
        return text[:CHAT_TRUNCATE_AT] + TRUNCATION_NOTE
    return text


def step_progress(role_name: str, title: str) -> str:
    return f"{role_name} está trabajando en: *{title}*\n⏳ Esto puede tomar unos minutos..."


def step_failed(title: str) -> str:
    return f"❌ Hubo un error en la fase *{title}*. Intenta de nuevo en unos minutos."


def approval_required(title: str) -> str:
    return (
        f"🔔 *Aprobación requerida:* {title}\n\n"
        'Responde *"aprobar"* para continuar o *"rechazar"* para cancelar.'
    )


def delivery_ready(pipeline: Pipeline) -> str:
    return (
        "✅ *Pipeline completado*\n\n"
        f"📋 _{excerpt(pipeline.request_text, 80)}_\n\n"
        "El resultado está listo.\n\n"
        '👉 Responde *"aprobar"* para recibirlo o *"rechazar"* para descartarlo.'
    )


def pipeline_completed(pipeline: Pipeline) -> str:
    result = pipeline.result or ""
    return f"✅ *{excerpt(pipeline.request_text, 60)}*\n\n{result[:COMPLETION_MAX_LENGTH]}"


def pipeline_rejected(pipeline: Pipeline) -> str:
    return f"🚫 Pipeline cancelado:\n📋 _{excerpt(pipeline.request_text, 80)}_"


def budget_hold(reason: str) -> str:
    return (
        "💸 Pausé tu pipeline: alcanzaste el límite de uso de tu workspace para este periodo.\n\n"
        f"_{reason}_\n\n"
        "Ajusta tu presupuesto en https://cerebrin.app y responde *\"aprobar\"* para continuar "
        "donde quedó, o *\"rechazar\"* para cancelarlo."
    )


def pipeline_already_finished(pipeline: Pipeline) -> str:
    if pipeline.status is PipelineStatus.completed:
        return (
            "✅ Ese pedido ya fue completado hace un momento:\n\n"
            f"📋 _{excerpt(pipeline.request_text, 80)}_\n\n"
            "Si necesitas otra versión, descríbela con más detalle."
        )
    return (
        "ℹ️ Ese pedido terminó sin resultado hace un momento:\n\n"
        f"📋 _{excerpt(pipeline.request_text, 80)}_\n\n"
        "Espera unos minutos antes de enviarlo otra vez."
    )
