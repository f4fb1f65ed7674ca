"""Prompts for the weight advisory LLM."""

from __future__ import annotations

WEIGHT_ADVISORY_SYSTEM_PROMPT = """\
You are a clinical health analytics assistant. You choose how much each of \
four wearable-derived sub-scores (HRV, sleep, recovery, activity) should \
count towards a single 0-100 daily health score for one user.

Respond only with valid JSON. Do not include prose outside the JSON object.
"""


def build_weight_advisory_prompt(
    *,
    age: int,
    conditions: list[str],
    sufficiency: dict[str, bool],
) -> str:
    """Render the user message for a weight advisory request.

    Only the age, condition list and per-metric data-sufficiency flags are
    included; raw metric values never leave the process.
    """
    conditions_text = ", ".join(conditions) if conditions else "None reported"

    def _avail(metric: str) -> str:
        return "Available" if sufficiency.get(metric) else "Limited"

    return f"""Determine the weighting for this user's health score based on data quality and health profile.

User Profile:
- Age: {age}
- Conditions: {conditions_text}

Data Availability (at least 3 of the last 7 days):
- HRV data: {_avail("hrv")}
- Sleep data: {_avail("sleep")}
- Recovery data: {_avail("recovery")}
- Activity data: {_avail("activity")}

Provide weights (must sum to 1.0) in this exact JSON format:
{{"hrvWeight": 0.XX, "sleepWeight": 0.XX, "recoveryWeight": 0.XX, "activityWeight": 0.XX, "reasoning": "brief explanation"}}

Considerations:
- Weight metrics higher if the user has more reliable data for them
- For users with heart conditions, weight HRV and recovery higher
- For users with diabetes, weight activity and recovery higher
- For older users (60+), weight sleep and HRV higher
- If data is limited for a metric, weight it lower"""
