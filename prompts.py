# prompts.py
PROFILE_SYSTEM_PROMPT = (
    "You generate short, non clinical behaviour profiles for a habit app. "
    "Always respond with valid JSON."
)

RECOMMENDATIONS_SYSTEM_PROMPT = (
    "You propose realistic, non clinical habit commitments for a discipline app. "
    "Always respond with valid JSON."
)


PROFILE_PROMPT = """
You are helping design a non clinical discipline coaching profile.

--------------------------------
INPUT DATA
--------------------------------

Onboarding answers JSON:
{payload_json}

Field meanings:
- roles: life roles the user holds (for example parent, student, founder).
- pressures: what is currently pressing on them.
- focus_domains: the 1–3 areas they want to work on first.
- struggle_patterns: the 1–3 ways their habits usually break down.
- reward_style: what keeps them going.
- change_style: how they prefer to change ("micro", "steady", "intensive").
- current_state: how they feel right now.
- tone_preferences: how they like to be spoken to.
- accountability_level: "light", "moderate" or "strict".

--------------------------------
YOUR TASK
--------------------------------

Create a short label for this person and three bullet lists:
- strengths
- risk_zones
- best_practices

Rules:
- No mental health labels, no diagnoses, no therapy language.
- No medical claims of any kind.
- Focus on habits, discipline, environment and patterns.
- Each bullet must be under 20 words.
- Give 3 bullets per list. Never leave a list empty.
- No promises about future outcomes.
- Keep language grounded and honest.

--------------------------------
OUTPUT FORMAT
--------------------------------

Respond with valid JSON in this exact format:
{{
  "profile_name": "string",
  "strengths": ["string", "string", "string"],
  "risk_zones": ["string", "string", "string"],
  "best_practices": ["string", "string", "string"]
}}

Return ONLY the JSON object. No commentary.
""".strip()


RECOMMENDATIONS_PROMPT = """
You are helping design realistic daily and weekly commitments for a discipline app.

--------------------------------
INPUT DATA
--------------------------------

Onboarding answers JSON:
{payload_json}

Profile summary JSON:
{summary_json}

--------------------------------
YOUR TASK
--------------------------------

Create up to {max_commitments} commitments. For each, output:
- title
- short_description
- cadence: one of "daily", "weekly"
- proof_mode: "none", "tick_only", "photo_optional" or "photo_required"
- reason: under 20 words, grounded in the answers above and honest.

Rules:
- Do not make any medical or mental health claims.
- Focus on behaviour, environment and realistic micro actions.
- Keep workloads small if they are overwhelmed or burnt out.
- If change_style is "micro", prefer fewer and smaller commitments.
- Match proof_mode to accountability_level: "light" rarely needs photos,
  "strict" may use "photo_required".
- Order commitments from most to least important.

--------------------------------
OUTPUT FORMAT
--------------------------------

Respond with valid JSON in this exact format:
{{
  "commitments": [
    {{
      "title": "string",
      "short_description": "string",
      "cadence": "daily",
      "proof_mode": "tick_only",
      "reason": "string"
    }}
  ]
}}

Return ONLY the JSON object. No commentary.
""".strip()
