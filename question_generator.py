#!/usr/bin/env python3
"""
Question Generator - Builds practice questions with the Gemini model
Every failure (network, quota, unparseable reply) surfaces as GenerationFailed
"""

import re
import json
import time
import logging
from typing import List, Dict, Optional, Any

import google.generativeai as genai

from config import GEMINI_API_KEY, GEMINI_MODEL
from quiz_models import QuizCategory, Difficulty, Question, VOCABULARY_CATEGORIES

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate questions. Please check your internet or API limit."
MAX_EXCLUDED_WORDS = 500

SYSTEM_INSTRUCTION = """You are an expert verbal ability tutor for MBA CET exams.
Generate challenging verbal ability questions.
Ensure distractors (wrong options) are plausible and confusing.
Provide clear, concise explanations and a short hint that does not give the answer away.
Reply with a JSON array only. Each item has the keys:
"type", "targetWord", "questionText", "options" (exactly 4 distinct strings),
"correctAnswer" (exactly one of the options), "explanation", "hint".
"""

CATEGORY_INSTRUCTIONS = {
    QuizCategory.SYNONYMS: (
        "Generate synonym questions. The 'targetWord' is the main word. "
        "The question should ask for the word most similar in meaning."
    ),
    QuizCategory.ANTONYMS: (
        "Generate antonym questions. The 'targetWord' is the main word. "
        "The question should ask for the word opposite in meaning."
    ),
    QuizCategory.IDIOMS: (
        "Generate idiom/phrase meaning questions. The 'targetWord' is the idiom itself. "
        "The question should provide the idiom and ask for its meaning."
    ),
    QuizCategory.CLOZE: (
        "Generate sentence completion (cloze) questions. The 'targetWord' is the correct answer "
        "that fits the blank. The question text must contain a '______' placeholder."
    ),
    QuizCategory.ONE_WORD: (
        "Generate one-word substitution questions. The question text describes a concept/person, "
        "and the answer is the single word for it. 'targetWord' is the answer."
    ),
    QuizCategory.SPOT_ERROR: (
        "Generate 'Spot the Error' questions. The question text is a sentence divided into segments "
        "(A, B, C, D) or a sentence with a grammatical error. The options should be the specific "
        "segment text or 'No Error'. 'targetWord' should be the incorrect segment."
    ),
    QuizCategory.SENTENCE_ARRANGEMENT: (
        "Generate 'Sentence Arrangement' (Parajumbles) questions. The questionText must provide 4-5 "
        "jumbled sentences labeled A, B, C, D. The options must be sequences like 'BDAC', 'ACBD'. "
        "'targetWord' is the correct sequence string."
    ),
    QuizCategory.POSSIBLE_STARTERS: (
        "Generate 'Possible Starters' questions. The questionText must provide two separate sentences "
        "and 3 possible starters labeled (i), (ii), (iii). The question asks which starters can combine "
        "the sentences meaningfully. Options should be like 'Only (i)', 'Both (i) and (ii)'. "
        "'targetWord' is the correct option text."
    ),
}

DIFFICULTY_INSTRUCTIONS = {
    Difficulty.EASY: "Keep the vocabulary common and the distractors clearly distinguishable.",
    Difficulty.MEDIUM: "Pitch the questions at actual CET exam level.",
    Difficulty.HARD: "Use rare vocabulary and very close distractors.",
}


class GenerationFailed(Exception):
    """Question generation failed; the message is safe to show to users"""

    def __init__(self, message: str = GENERATION_FAILED_MESSAGE):
        super().__init__(message)


def build_prompt(category: QuizCategory, difficulty: Difficulty, count: int,
                 exclude_words: Optional[List[str]] = None) -> str:
    """Compose the generation prompt for one category and difficulty"""
    category = QuizCategory(category)
    difficulty = Difficulty(difficulty)

    prompt = (
        f"Generate {count} distinct {category.value} questions for MBA CET preparation.\n"
        f"{CATEGORY_INSTRUCTIONS[category]}\n"
        f"Difficulty: {difficulty.value}. {DIFFICULTY_INSTRUCTIONS[difficulty]}\n"
    )

    # Exclusion only makes sense where answers are reusable words
    excluded = list(exclude_words or [])[-MAX_EXCLUDED_WORDS:]
    if category in VOCABULARY_CATEGORIES and excluded:
        prompt += (
            "IMPORTANT: Do NOT use the following words/idioms as the correct answer (targetWord): "
            f"[{', '.join(excluded)}].\n"
            "If the exclusion list is very long, just ensure you pick high-frequency MBA exam words "
            "that are NOT in that list.\n"
        )
    return prompt


def extract_json_array(text: str) -> List[Dict[str, Any]]:
    """Pull the JSON array out of a model reply, tolerating code fences"""
    content = (text or "").strip()
    m = re.search(r"\[.*\]", content, flags=re.S)
    json_str = m.group(0) if m else content
    data = json.loads(json_str)
    if not isinstance(data, list):
        raise ValueError("Model reply is not a JSON array")
    return data


def parse_questions(items: List[Dict[str, Any]], category: QuizCategory,
                    id_prefix: Optional[str] = None) -> List[Question]:
    """Turn raw items into questions, dropping any that break the option contract"""
    id_prefix = id_prefix or str(int(time.time() * 1000))
    questions = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        raw_options = item.get("options")
        options = [str(o) for o in raw_options] if isinstance(raw_options, list) else []
        correct = str(item.get("correctAnswer") or "")
        question_text = str(item.get("questionText") or "")
        if len(options) != 4 or len(set(options)) != 4 or correct not in options:
            logger.warning(f"Dropping malformed question #{index}: {question_text[:60]}")
            continue

        target_word = str(item.get("targetWord") or correct)
        questions.append(Question(
            id=f"{id_prefix}-{index}",
            type=category,
            target_word=target_word,
            question_text=question_text,
            options=options,
            correct_answer=correct,
            explanation=str(item.get("explanation") or ""),
            hint=str(item.get("hint") or f"The answer starts with '{correct[:1]}'."),
        ))
    return questions


class QuestionGenerator:
    """Generates questions through any model exposing generate_content(prompt).text"""

    def __init__(self, model: Any = None, api_key: str = GEMINI_API_KEY, model_name: str = GEMINI_MODEL):
        self._model = model
        self.api_key = api_key
        self.model_name = model_name

    def _get_model(self) -> Any:
        if self._model is None:
            if not self.api_key:
                raise GenerationFailed()
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                self.model_name,
                system_instruction=SYSTEM_INSTRUCTION,
                generation_config={"response_mime_type": "application/json"},
            )
            logger.info(f"Gemini model '{self.model_name}' initialised")
        return self._model

    def generate(self, category: QuizCategory, difficulty: Difficulty, count: int,
                 exclude_words: Optional[List[str]] = None) -> List[Question]:
        """Return exactly `count` questions or raise GenerationFailed"""
        category = QuizCategory(category)
        prompt = build_prompt(category, difficulty, count, exclude_words)

        try:
            response = self._get_model().generate_content(prompt)
            items = extract_json_array(response.text)
            questions = parse_questions(items, category)
        except GenerationFailed:
            logger.error("Question generation failed: no Gemini API key configured")
            raise
        except Exception as e:
            logger.error(f"Failed to generate questions: {e}")
            raise GenerationFailed() from e

        if len(questions) < count:
            logger.error(f"Model returned {len(questions)} usable questions, {count} requested")
            raise GenerationFailed()
        return questions[:count]
