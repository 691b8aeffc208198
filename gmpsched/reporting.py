from __future__ import annotations

from typing import Dict, Optional, Sequence, Union
import io

import pandas as pd

from .engine import find_violations
from .models import Task, format_day

CSV_BOM = "\ufeff"

CSV_HEADERS = {
    "ID": "任务ID",
    "Name": "任务名称",
    "Assignee": "负责人",
    "Start": "开始日期",
    "End": "结束日期",
    "Duration": "工期(天)",
    "Status": "状态",
    "GMP Critical": "GMP关键",
    "Progress": "进度",
}


def tasks_to_dataframe(tasks: Sequence[Task]) -> pd.DataFrame:
    """Get the task list as a pandas DataFrame, in input order."""
    data = []
    for task in tasks:
        data.append(
            {
                "ID": task.id,
                "Name": task.name,
                "Assignee": task.assignee,
                "Start": format_day(task.start_date),
                "End": format_day(task.end_date),
                "Duration": task.duration,
                "Status": task.status.value,
                "GMP Critical": "Yes" if task.gmp_critical else "No",
                "Progress": task.progress,
                "Dependencies": ";".join(task.dependencies),
            }
        )
    return pd.DataFrame(
        data,
        columns=["ID", "Name", "Assignee", "Start", "End", "Duration",
                 "Status", "GMP Critical", "Progress", "Dependencies"],
    )


def violations_to_dataframe(tasks: Sequence[Task]) -> pd.DataFrame:
    rows = [
        {
            "Task": v.task_id,
            "Dependency": v.dependency_id,
            "Required Start": format_day(v.required_start),
            "Gap (days)": v.gap_days,
        }
        for v in find_violations(tasks)
    ]
    return pd.DataFrame(rows, columns=["Task", "Dependency", "Required Start", "Gap (days)"])


def compute_schedule_health(tasks: Sequence[Task]) -> Dict[str, object]:
    known = {t.id for t in tasks}
    total_relations = sum(
        1 for t in tasks for dep_id in t.dependencies if dep_id in known
    )
    dangling = sum(
        1 for t in tasks for dep_id in t.dependencies if dep_id not in known
    )
    violation_count = len(violations_to_dataframe(tasks))

    if total_relations == 0:
        score = 100
    else:
        score = max(0, int(100 - (violation_count / total_relations) * 100))

    if score >= 85:
        label = "Healthy"
    elif score >= 60:
        label = "Watch"
    else:
        label = "At Risk"

    return {
        "score": score,
        "label": label,
        "relations": total_relations,
        "violations": violation_count,
        "unknown_dependencies": dangling,
        "gmp_critical": sum(1 for t in tasks if t.gmp_critical),
    }


def export_csv(
    tasks: Sequence[Task],
    path_or_buffer: Optional[Union[str, io.StringIO]] = None,
) -> Optional[str]:
    """Write the Gantt task table as UTF-8 CSV with a BOM and localized headers.

    Returns the CSV text (BOM included) when no path or buffer is given.
    """
    df = tasks_to_dataframe(tasks).drop(columns=["Dependencies"])
    df["GMP Critical"] = df["GMP Critical"].map({"Yes": "是", "No": "否"})
    df["Progress"] = df["Progress"].map(lambda p: f"{p}%")
    df = df.rename(columns=CSV_HEADERS)
    if path_or_buffer is None:
        return CSV_BOM + df.to_csv(index=False)
    if isinstance(path_or_buffer, str):
        df.to_csv(path_or_buffer, index=False, encoding="utf-8-sig")
    else:
        # text buffers ignore the encoding argument
        path_or_buffer.write(CSV_BOM)
        df.to_csv(path_or_buffer, index=False)
    return None
