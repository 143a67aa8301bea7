import os
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DB_DIR = os.path.join(BASE_DIR, "db")
AGENT_DB_PATH = os.path.join(DB_DIR, "agents.db")

PROMPTS_DIR = os.path.join(BASE_DIR, "prompts")
PLANNING_PROMPT_PATH = os.path.join(PROMPTS_DIR, "agent_planning_system_prompt.md")
