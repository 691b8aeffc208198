from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Tuple

from .models import Task, TaskStatus, add_days, parse_day


@dataclass(frozen=True)
class TemplateStep:
    name: str
    duration: int
    gmp_critical: bool
    category: str


# kind -> (name prefix, steps)
MODULE_TEMPLATES: Dict[str, Tuple[str, List[TemplateStep]]] = {
    "facility": (
        "[厂房]",
        [
            TemplateStep("URS (用户需求说明书) 签署", 5, True, "Planning"),
            TemplateStep("施工商选型与审计", 10, True, "Procurement"),
            TemplateStep("设计确认 (DQ)", 7, True, "Validation"),
            TemplateStep("施工与安装确认 (IQ)", 20, True, "Construction"),
            TemplateStep("运行确认 (OQ) & HVAC调试", 14, True, "Validation"),
            TemplateStep("性能确认 (PQ) & 环境监测", 14, True, "Validation"),
        ],
    ),
    "equipment": (
        "[设备]",
        [
            TemplateStep("URS (用户需求说明书) 签署", 5, True, "Planning"),
            TemplateStep("供应商选型与审计", 10, True, "Procurement"),
            TemplateStep("设计确认 (DQ)", 5, True, "Validation"),
            TemplateStep("到货与安装确认 (IQ)", 7, True, "Validation"),
            TemplateStep("运行确认 (OQ)", 10, True, "Validation"),
            TemplateStep("性能确认 (PQ)", 10, True, "Validation"),
        ],
    ),
    "tech_transfer": (
        "[技转]",
        [
            TemplateStep("技术转移方案 (Protocol) 制定", 5, True, "Planning"),
            TemplateStep("物料供应商审计", 14, True, "Quality"),
            TemplateStep("分析方法转移 (AMT)", 14, True, "QC"),
            TemplateStep("工艺参数确认 runs", 10, True, "Process"),
            TemplateStep("工艺验证 (PPQ)", 21, True, "Validation"),
        ],
    ),
}

GENERAL_TASK = TemplateStep("新建通用任务", 5, False, "General")
DEFAULT_TEMPLATE_ASSIGNEE = "待定"
UNASSIGNED = "未分配"


def expand_template(kind: str, start: date, id_prefix: str) -> List[Task]:
    """
    Expand a validation module template into a chain of tasks.

    Each task depends on the one before it and starts the day after it ends.
    End dates are inclusive: a 5-day step starting 2024-01-01 ends 2024-01-05,
    so ``span_days == duration``. This is one day earlier than the legacy
    web app, which ended such a step on 2024-01-06.
    ``kind`` is one of ``general``, ``facility``, ``equipment``, ``tech_transfer``.
    """
    start = parse_day(start, "start")

    if kind == "general":
        step = GENERAL_TASK
        return [
            Task(
                id=id_prefix,
                name=step.name,
                start_date=start,
                end_date=add_days(start, step.duration - 1),
                duration=step.duration,
                status=TaskStatus.PENDING,
                assignee=UNASSIGNED,
                gmp_critical=step.gmp_critical,
                category=step.category,
            )
        ]

    if kind not in MODULE_TEMPLATES:
        valid = ", ".join(["general"] + sorted(MODULE_TEMPLATES))
        raise ValueError(f"Unknown template '{kind}'. Must be one of: {valid}.")

    prefix, steps = MODULE_TEMPLATES[kind]
    tasks: List[Task] = []
    current = start
    prev_id = ""
    for index, step in enumerate(steps):
        task_id = f"{id_prefix}_{index}"
        end = add_days(current, step.duration - 1)
        tasks.append(
            Task(
                id=task_id,
                name=f"{prefix} {step.name}",
                start_date=current,
                end_date=end,
                duration=step.duration,
                status=TaskStatus.PENDING,
                assignee=DEFAULT_TEMPLATE_ASSIGNEE,
                dependencies=[prev_id] if prev_id else [],
                gmp_critical=step.gmp_critical,
                category=step.category,
            )
        )
        current = add_days(end, 1)
        prev_id = task_id
    return tasks
