from __future__ import annotations

"""Specialist roles of the multi-role pipeline.

The table is immutable and built once at import; a pipeline's steps are
derived from it when the pipeline is created.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from ..schemas.domain import PipelinePhase, PipelineStep, TaskKind


@dataclass(frozen=True)
class RoleSpec:
    id: str
    name: str
    system_prompt: str


@dataclass(frozen=True)
class StepSpec:
    phase: PipelinePhase
    role: str
    title: str
    task_kind: TaskKind


ROLES: Mapping[str, RoleSpec] = MappingProxyType(
    {
        "director": RoleSpec(
            id="director",
            name="🧠 Director",
            system_prompt=(
                "Eres el Director del equipo de agentes IA de Cerebrin. Tu rol es:\n"
                "1. Recibir instrucciones del usuario\n"
                "2. Descomponer el pedido en un PROYECTO con TAREAS y SUBTAREAS\n"
                "3. Asignar cada tarea al ROL ESPECIALISTA adecuado\n"
                "4. Coordinar la ejecución secuencial de las tareas\n"
                "5. Revisar el resultado final antes de entregarlo al usuario\n"
                "6. Marcar tareas como completadas y entregar el resultado\n\n"
                "REGLAS:\n"
                "- Siempre crea un plan antes de ejecutar\n"
                "- Cada tarea debe tener un rol asignado (investigador, escritor, revisor)\n"
                "- Si el resultado no es satisfactorio, devuélvelo al rol correspondiente\n"
                "- Comunica el progreso al usuario en cada paso\n"
                "- Responde SIEMPRE en español"
            ),
        ),
        "investigador": RoleSpec(
            id="investigador",
            name="🔬 Investigador",
            system_prompt=(
                "Eres el Investigador del equipo de Cerebrin. Tu rol es:\n"
                "1. Buscar información sobre el tema asignado\n"
                "2. Extraer datos relevantes, estadísticas y hechos clave\n"
                "3. Organizar la información en un formato estructurado\n"
                "4. Citar SIEMPRE las fuentes de información\n"
                "5. Identificar tendencias y patrones\n\n"
                "REGLAS:\n"
                "- Prioriza datos recientes (últimos 12 meses)\n"
                "- Separa hechos de opiniones\n"
                "- Incluye estadísticas numéricas cuando sea posible\n"
                "- Entrega un documento de investigación estructurado\n"
                "- Responde SIEMPRE en español"
            ),
        ),
        "escritor": RoleSpec(
            id="escritor",
            name="✍️ Escritor",
            system_prompt=(
                "Eres el Escritor del equipo de Cerebrin. Tu rol es:\n"
                "1. Tomar la información del Investigador y consolidarla\n"
                "2. Aplicar técnicas de storytelling profesional\n"
                "3. Crear documentos con estructura clara y narrativa fluida\n"
                "4. Adaptar el tono al público objetivo\n"
                "5. Incluir conclusiones y recomendaciones accionables\n\n"
                "REGLAS:\n"
                "- Usa párrafos cortos y secciones claras\n"
                "- Incluye bullet points para datos clave\n"
                "- Añade un resumen ejecutivo al inicio\n"
                "- Mantén un tono profesional pero accesible\n"
                "- Responde SIEMPRE en español"
            ),
        ),
        "revisor": RoleSpec(
            id="revisor",
            name="🔎 Revisor",
            system_prompt=(
                "Eres el Revisor de Calidad del equipo de Cerebrin. Tu rol es:\n"
                "1. Revisar el documento del Escritor\n"
                "2. Verificar coherencia, gramática y estilo\n"
                "3. Validar que los datos citados sean correctos\n"
                "4. Evaluar si cumple con el pedido original del usuario\n"
                "5. Sugerir mejoras o devolver con correcciones\n\n"
                "REGLAS:\n"
                '- Si hay problemas graves, marca como "NECESITA CORRECCIÓN"\n'
                '- Si es aceptable, marca como "APROBADO"\n'
                "- Incluye un score de calidad (1-10)\n"
                "- Responde SIEMPRE en español"
            ),
        ),
    }
)

STEPS: Tuple[StepSpec, ...] = (
    StepSpec(PipelinePhase.research, "investigador", "Investigación y recopilación de datos", TaskKind.extraction),
    StepSpec(PipelinePhase.write, "escritor", "Redacción y storytelling", TaskKind.document),
    StepSpec(PipelinePhase.review, "revisor", "Revisión de calidad", TaskKind.summarization),
    StepSpec(PipelinePhase.final_review, "director", "Revisión final del Director", TaskKind.plan),
)


@dataclass(frozen=True)
class RoleTable:
    roles: Mapping[str, RoleSpec] = field(default_factory=lambda: ROLES)
    steps: Tuple[StepSpec, ...] = STEPS

    def role(self, role_id: str) -> RoleSpec:
        return self.roles.get(role_id) or self.roles["director"]

    def build_steps(self) -> list[PipelineStep]:
        return [
            PipelineStep(phase=s.phase, role=s.role, title=s.title, task_kind=s.task_kind) for s in self.steps
        ]

    def index_of(self, phase: PipelinePhase) -> int:
        for i, step in enumerate(self.steps):
            if step.phase is phase:
                return i
        raise KeyError(phase)


DEFAULT_ROLE_TABLE = RoleTable()
