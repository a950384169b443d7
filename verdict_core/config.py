
# ═════════════════════════════════════════════════════════════════════════
# VERDICT: VOICE INTERVIEW SCORING ENGINE
# Runtime Configuration & Scoring Policy Constants
# ═════════════════════════════════════════════════════════════════════════

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ── SYSTEM PATHS ──
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("VERDICT_DATA_DIR", str(BASE_DIR / "research_data")))
SESSIONS_DIR = DATA_DIR / "sessions"
TRANSCRIPTS_DIR = DATA_DIR / "transcripts"
REPORTS_DIR = DATA_DIR / "reports"

# Ensure directories exist
for d in [DATA_DIR, SESSIONS_DIR, TRANSCRIPTS_DIR, REPORTS_DIR]:
    d.mkdir(parents=True, exist_ok=True)

# ── TENANT CREDENTIALS ──
# JSON object mapping tenant id -> scoring service API key.
# A tenant without an entry has no credential; there is no platform fallback.
TENANT_CREDENTIALS_FILE = Path(
    os.getenv("VERDICT_TENANT_CREDENTIALS", str(DATA_DIR / "tenant_credentials.json"))
)

# ── MODEL SELECTION ──
LLM_MODEL = os.getenv("VERDICT_LLM_MODEL", "llama-3.3-70b-versatile")
LLM_FALLBACK_MODELS = ["qwen-2.5-32b", "llama-3.1-8b-instant"]
LLM_TEMP = 0.3                # Low temperature for reproducible scoring
LLM_MAX_TOKENS = 4096
LIVE_SCORING_MAX_TOKENS = 800
FLOW_CLASSIFICATION_MAX_TOKENS = 300

# ── QUESTION TRACKING ──
KEYWORD_MIN_LENGTH = 5        # keywords are words longer than 4 characters
KEYWORD_POOL_SIZE = 5         # the question's five longest words
KEYWORD_MATCH_THRESHOLD = 2
QUESTION_PREFIX_LENGTH = 30
ADHOC_CRITERION = "General"

SETUP_PHRASES = ("audio", "video", "hear", "see me", "setup", "working fine")
DISFLUENCY_MARKERS = (
    "um", "uh", "uhm", "hmm", "mm", "mhm", "er", "ah", "uh-huh", "[inaudible]",
)
MIN_UTTERANCE_LENGTH = 5      # utterances must be longer than this to be analyzed

MOVE_ON_PATTERNS = (
    r"move (forward|on|ahead)",
    r"next question",
    r"that'?s (all|it|everything)",
    r"i'?m (done|finished)",
    r"nothing (more|else) to add",
    r"let'?s (move on|continue|proceed)",
)

WRAP_UP_PATTERNS = ("do you have any questions", "that concludes")
SIGN_OFF_PATTERNS = (
    "thank you for your time",
    "thank you for interviewing",
    "recruitment team will respond",
    "we will get back to you",
)
CLOSING_MESSAGE_PATTERNS = (
    "do you have any questions",
    "thank you for your time",
    "thank you for interviewing",
    "recruitment team will respond",
    "we will get back to you",
    "that concludes",
)

# ── ELABORATION PROTOCOL ──
ELABORATION_WORD_FLOOR = 80
MAX_ELABORATION_PROMPTS = 2
ELABORATION_PROMPTS = (
    "Your answer seems brief. Could you please elaborate more?",
    "Could you please explain it a bit more?",
)

# ── LIVE EVALUATION ──
MIN_ANSWER_LENGTH = 10
REDIRECT_CONFIDENCE_THRESHOLD = 80
REDIRECT_INSTRUCTION = (
    "The candidate's last answer drifted away from the question. Politely "
    "acknowledge what they said and steer them back to the original question: "
    "\"{question}\""
)

# ── SCORING POLICY ──
DEFAULT_TOTAL_QUESTIONS = 10
TECHNICAL_CRITERIA = ("technical", "technical skills")
COMMUNICATION_CRITERIA = ("communication",)
TECHNICAL_LABEL = "Technical Skills"
COMMUNICATION_LABEL = "Communication"
TECHNICAL_WEIGHT = 50
COMMUNICATION_WEIGHT = 20
OTHER_CRITERIA_WEIGHT = 30

DISENGAGEMENT_PHRASES = (
    "no, sorry",
    "please ask the next",
    "skip",
    "i don't know",
    "not sure",
)

HIRE_THRESHOLD = 65
MAYBE_THRESHOLD = 40
PASS_THRESHOLD = 65

# ── INTERVIEW PROTOCOL ──
DEFAULT_DURATION_MINUTES = 30
MIN_QUESTION_COVERAGE = 0.5   # share of configured questions a transcript must cover

CRITERIA_EVALUATION_FOCUS = {
    "Technical": "technical accuracy, depth of knowledge, specific tools/technologies mentioned, practical experience",
    "Technical Skills": "technical accuracy, depth of knowledge, specific tools/technologies mentioned, practical experience",
    "Communication": "clarity of expression, logical structure, articulation, ability to explain concepts clearly",
    "Problem Solving": "analytical approach, step-by-step reasoning, creative solutions, handling of challenges",
    "Culture Fit": "alignment with company values, motivation, career goals, enthusiasm for the role",
    "Cultural Fit": "alignment with company values, motivation, career goals, enthusiasm for the role",
    "Teamwork": "collaboration examples, teamwork experience, interpersonal skills, conflict resolution",
    "Team Player": "collaboration examples, teamwork experience, interpersonal skills, conflict resolution",
    "Leadership": "leadership examples, decision-making, mentoring experience, taking initiative",
    "Experience": "relevant work history, specific project examples, domain expertise",
    "Behavioral": "past behavior examples, situational responses, work ethics, professionalism",
    "Adaptability": "flexibility, learning new skills, handling change, resilience",
}
DEFAULT_EVALUATION_FOCUS = "general relevance and completeness"
