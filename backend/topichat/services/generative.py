"""
Generative Text Service
Uses the Gemini API (or a mock) to write curator messages
"""
import time
from abc import ABC, abstractmethod

from topichat.config import get_settings
from topichat.errors import GenerationError


class BaseGenerator(ABC):
    """Base class for text generation backends"""

    @abstractmethod
    def generate(self, prompt: str, system_instruction: str = "") -> str:
        """Generate text for a prompt under a system instruction"""
        pass


class MockGenerator(BaseGenerator):
    """
    Mock generator for development and testing
    Echoes the prompt back in a clearly marked template
    """

    def generate(self, prompt: str, system_instruction: str = "") -> str:
        first_line = prompt.strip().splitlines()[0] if prompt.strip() else ""
        if len(first_line) > 80:
            first_line = first_line[:80] + "..."
        return f"[MOCK] {first_line}"


class GeminiGenerator(BaseGenerator):
    """
    Gemini API integration:
    - Retry logic with exponential backoff
    - Rate limiting handling
    - Safety settings configuration
    """

    MAX_RETRIES = 3
    BASE_DELAY = 1.0  # seconds
    MAX_DELAY = 30.0  # seconds

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash-lite"):
        if not api_key:
            raise GenerationError("GEMINI_API_KEY is not set")
        self.api_key = api_key
        self.model = model

        import google.generativeai as genai
        self._genai = genai
        genai.configure(api_key=self.api_key)

        self.safety_settings = [
            {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        ]
        self.generation_config = {
            "temperature": 0.7,
            "top_p": 0.9,
            "max_output_tokens": 1024,
        }

    def generate(self, prompt: str, system_instruction: str = "") -> str:
        client = self._genai.GenerativeModel(
            model_name=self.model,
            safety_settings=self.safety_settings,
            generation_config=self.generation_config,
            system_instruction=system_instruction or None,
        )
        last_error = None

        for attempt in range(self.MAX_RETRIES):
            try:
                response = client.generate_content(prompt)

                # Check if response was blocked
                if not response.parts:
                    raise GenerationError("Response blocked by safety filters")

                return response.text.strip()

            except GenerationError:
                raise
            except Exception as e:
                last_error = e
                error_str = str(e).lower()

                # Rate limits and server errors are retried with backoff
                if any(marker in error_str for marker in ("429", "quota", "rate", "500", "503", "timeout")):
                    delay = min(self.BASE_DELAY * (2 ** attempt), self.MAX_DELAY)
                    time.sleep(delay)
                    continue
                break

        raise GenerationError(f"Gemini request failed: {last_error}")


class TextGenerator:
    """
    Text generator factory that returns the appropriate implementation
    based on configuration
    """

    def __init__(self):
        settings = get_settings()

        if settings.use_mock_ai:
            self.generator = MockGenerator()
        else:
            self.generator = GeminiGenerator(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
            )

    def generate(self, prompt: str, system_instruction: str = "") -> str:
        return self.generator.generate(prompt, system_instruction)
