"""Claude API client for criteria scoring, topic clustering and copywriting."""

import asyncio
import json
import re
from typing import Any, Optional

import httpx

from digest_curator.config import Settings
from digest_curator.core import (
    Article,
    ContentGenerator,
    CriteriaEvaluator,
    Criterion,
    CriterionVerdict,
    FactCheck,
    FactChecker,
    GeneratedContent,
    MalformedResponse,
    Ok,
    ParseResult,
    Post,
    SubjectLineWriter,
    TopicClusterer,
    TopicCluster,
)


class ClaudeClient(
    CriteriaEvaluator, TopicClusterer, ContentGenerator, FactChecker, SubjectLineWriter
):
    """Claude API client implementation."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.api_key = settings.anthropic_api_key
        self.model = settings.claude.model
        self.max_tokens = settings.claude.max_tokens
        self.temperature = settings.claude.temperature
        self.base_url = "https://api.anthropic.com/v1"
        self.max_retries = settings.claude.max_retries
        self.initial_retry_delay = settings.claude.initial_retry_delay
        self.request_delay = settings.claude.request_delay
        self._last_request_time = 0.0
        self._rate_lock = asyncio.Lock()

    async def evaluate_criterion(
        self, criterion: Criterion, post: Post
    ) -> ParseResult[CriterionVerdict]:
        """Score a post for one criterion."""
        prompt_template = self.settings.prompts.criterion.get("user", "")
        system_prompt = self.settings.prompts.criterion.get("system", "")

        prompt = prompt_template.format(
            criterion=criterion.name,
            guidance=criterion.prompt,
            score_min=_format_number(self.settings.curation.score_min),
            score_max=_format_number(self.settings.curation.score_max),
            title=post.title,
            description=post.description or "No description available",
            content=post.content[:1000] if post.content else "No content available",
        )

        response = await self._call_api(prompt=prompt, system=system_prompt)
        return self.parse_criterion_response(response)

    async def cluster_topics(self, posts: list[Post]) -> ParseResult[list[TopicCluster]]:
        """Group posts covering the same story.

        Single attempt: a failed clustering call is not retried.
        """
        prompt_template = self.settings.prompts.topic_dedup.get("user", "")
        system_prompt = self.settings.prompts.topic_dedup.get("system", "")

        articles = "\n\n".join(
            f"{i}. {post.title}\n   {post.description or 'No description'}"
            for i, post in enumerate(posts)
        )
        prompt = prompt_template.format(articles=articles, count=len(posts))

        response = await self._call_api(prompt=prompt, system=system_prompt, max_retries=1)
        return self.parse_cluster_response(response)

    async def generate_content(self, post: Post) -> ParseResult[GeneratedContent]:
        """Write headline and body for a selected post."""
        prompt_template = self.settings.prompts.newsletter_writer.get("user", "")
        system_prompt = self.settings.prompts.newsletter_writer.get("system", "")

        prompt = prompt_template.format(
            title=post.title,
            description=post.description or "No description available",
            content=post.content[:1500] if post.content else "No additional content",
            url=post.source_url or "",
        )

        response = await self._call_api(prompt=prompt, system=system_prompt)
        return self.parse_content_response(response)

    async def fact_check(self, body: str, source_text: str) -> ParseResult[FactCheck]:
        """Check a generated body against the post it was written from."""
        prompt_template = self.settings.prompts.fact_checker.get("user", "")
        system_prompt = self.settings.prompts.fact_checker.get("system", "")

        prompt = prompt_template.format(
            content=body,
            source=source_text[:2000] if source_text else "No source text available",
            pass_score=_format_number(self.settings.curation.fact_check_pass_score),
        )

        response = await self._call_api(prompt=prompt, system=system_prompt)
        return self.parse_fact_check_response(response)

    async def write_subject_line(self, article: Article) -> ParseResult[str]:
        """Write the issue's subject line from its lead article."""
        prompt_template = self.settings.prompts.subject_line.get("user", "")
        system_prompt = self.settings.prompts.subject_line.get("system", "")

        prompt = prompt_template.format(
            headline=article.headline,
            content=article.body[:300],
            max_chars=self.settings.curation.subject_line_max_chars,
        )

        response = await self._call_api(prompt=prompt, system=system_prompt)
        return self.parse_subject_line_response(response)

    def parse_criterion_response(self, response: str) -> ParseResult[CriterionVerdict]:
        """Parse ``{"score": number, "reason": string}``."""
        data = self._load_json(response, required_key="score")
        if isinstance(data, MalformedResponse):
            return data
        if not isinstance(data, dict) or "score" not in data:
            return self._malformed(response, "missing 'score' field")

        score = data["score"]
        if isinstance(score, bool):
            return self._malformed(response, f"score is not numeric: {score!r}")
        if not isinstance(score, (int, float)):
            try:
                score = float(score)
            except (TypeError, ValueError):
                return self._malformed(response, f"score is not numeric: {score!r}")

        reason = data.get("reason", "")
        return Ok(CriterionVerdict(score=float(score), reason=str(reason or "")))

    def parse_cluster_response(self, response: str) -> ParseResult[list[TopicCluster]]:
        """Parse clusters from ``{"groups": [...]}``.

        Each group may be a plain list of indices or an object with
        ``indices`` (or ``primary_article_index`` plus ``duplicate_indices``)
        and an optional ``topic_signature``.
        """
        data = self._load_json(response, required_key="groups")
        if isinstance(data, MalformedResponse):
            return data
        if not isinstance(data, dict) or not isinstance(data.get("groups"), list):
            return self._malformed(response, "missing 'groups' list")

        clusters = []
        for group in data["groups"]:
            if isinstance(group, list):
                indices, topic = group, ""
            elif isinstance(group, dict):
                topic = str(group.get("topic_signature") or group.get("topic") or "")
                if "indices" in group:
                    indices = group["indices"]
                elif "primary_article_index" in group:
                    indices = [group["primary_article_index"], *group.get("duplicate_indices", [])]
                else:
                    return self._malformed(response, "group without indices")
            else:
                return self._malformed(response, f"unexpected group: {group!r}")

            if not isinstance(indices, list) or not all(
                isinstance(i, int) and not isinstance(i, bool) for i in indices
            ):
                return self._malformed(response, f"group indices must be integers: {indices!r}")

            clusters.append(TopicCluster(indices=list(indices), topic=topic))

        return Ok(clusters)

    def parse_content_response(self, response: str) -> ParseResult[GeneratedContent]:
        """Parse ``{"headline": string, "content": string}``."""
        data = self._load_json(response, required_key="headline")
        if isinstance(data, MalformedResponse):
            return data
        if not isinstance(data, dict):
            return self._malformed(response, "expected a JSON object")

        headline = str(data.get("headline") or "").strip()
        body = str(data.get("content") or data.get("body") or "").strip()
        if not headline or not body:
            return self._malformed(response, "empty headline or content")

        return Ok(GeneratedContent(headline=headline, body=body))

    def parse_fact_check_response(self, response: str) -> ParseResult[FactCheck]:
        """Parse ``{"score": number, "details": string, "passed": bool}``.

        ``passed`` falls back to comparing the score with the configured
        pass score when the model leaves it out.
        """
        data = self._load_json(response, required_key="score")
        if isinstance(data, MalformedResponse):
            return data
        if not isinstance(data, dict) or "score" not in data:
            return self._malformed(response, "missing 'score' field")

        score = data["score"]
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return self._malformed(response, f"score is not numeric: {score!r}")

        passed = data.get("passed")
        if not isinstance(passed, bool):
            passed = score >= self.settings.curation.fact_check_pass_score

        details = str(data.get("details") or "")
        return Ok(FactCheck(score=float(score), details=details, passed=passed))

    def parse_subject_line_response(self, response: str) -> ParseResult[str]:
        """Take the first non-empty line of a plain-text answer, without quotes."""
        text = response.strip()
        if text.startswith("{"):
            data = self._load_json(text, required_key="subject_line")
            if isinstance(data, MalformedResponse):
                return data
            if not isinstance(data, dict) or not data.get("subject_line"):
                return self._malformed(response, "missing 'subject_line' field")
            text = str(data["subject_line"])

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        subject = lines[0].strip("\"'“”*` ") if lines else ""
        if not subject:
            return self._malformed(response, "empty subject line")
        return Ok(subject)

    def _load_json(self, response: str, required_key: Optional[str] = None) -> Any:
        json_text = self._extract_json(response, required_key)
        try:
            return json.loads(json_text)
        except json.JSONDecodeError as e:
            return self._malformed(response, f"{type(e).__name__}: {e}")

    def _malformed(self, response: str, error: str) -> MalformedResponse:
        """Log a malformed response and wrap it."""
        print(f"  ⚠️  Claude returned an unusable response: {error}")
        if len(response) > 500:
            print(f"     Response start: {response[:250]}...")
            print(f"     Response end: ...{response[-250:]}")
        else:
            print(f"     Full response: {response}")
        return MalformedResponse(raw=response, error=error)

    async def _call_api(self, prompt: str, system: str, max_retries: Optional[int] = None) -> str:
        """Call Claude API with retry logic and rate limiting."""
        attempts = max_retries if max_retries is not None else self.max_retries

        await self._wait_for_slot()

        last_exception: Optional[Exception] = None

        for attempt in range(attempts):
            is_last = attempt == attempts - 1
            try:
                async with httpx.AsyncClient(timeout=60.0) as client:
                    response = await client.post(
                        f"{self.base_url}/messages",
                        headers={
                            "x-api-key": self.api_key,
                            "anthropic-version": "2023-06-01",
                            "content-type": "application/json",
                        },
                        json={
                            "model": self.model,
                            "max_tokens": self.max_tokens,
                            "temperature": self.temperature,
                            "system": system,
                            "messages": [
                                {"role": "user", "content": prompt}
                            ],
                        },
                    )

                    if response.status_code == 200:
                        data = response.json()
                        return data["content"][0]["text"]

                    # Rate limit - retry with backoff
                    if response.status_code == 429 and not is_last:
                        retry_after = self._get_retry_delay(response, attempt)
                        print(f"⏳ Rate limit hit, retrying after {retry_after:.1f}s (attempt {attempt + 1}/{attempts})")
                        await asyncio.sleep(retry_after)
                        continue

                    # Server errors - retry with backoff
                    if response.status_code >= 500 and not is_last:
                        retry_delay = self.initial_retry_delay * (2 ** attempt)
                        print(f"⚠️  Server error {response.status_code}, retrying after {retry_delay:.1f}s")
                        await asyncio.sleep(retry_delay)
                        continue

                    # Other errors, or retries exhausted
                    response.raise_for_status()

            except httpx.RequestError as e:
                last_exception = e
                if not is_last:
                    retry_delay = self.initial_retry_delay * (2 ** attempt)
                    print(f"⚠️  Network error, retrying after {retry_delay:.1f}s")
                    await asyncio.sleep(retry_delay)
                    continue
                raise

        if last_exception:
            raise last_exception
        raise RuntimeError("Failed to call API after all retries")

    async def _wait_for_slot(self) -> None:
        """Rate limiting: keep request_delay between request starts.

        Concurrent callers queue on the lock, and each one reserves its start
        time before releasing it.
        """
        async with self._rate_lock:
            loop = asyncio.get_running_loop()
            wait = self._last_request_time + self.request_delay - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_time = loop.time()

    def _get_retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Calculate retry delay from response headers or use exponential backoff."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

        return self.initial_retry_delay * (2 ** attempt)

    def _fix_json(self, text: str) -> str:
        """Try to fix common JSON issues."""
        # Remove trailing commas before } or ]
        text = re.sub(r',(\s*[}\]])', r'\1', text)
        return text

    def _extract_json(self, text: str, required_key: Optional[str] = None) -> str:
        """Extract JSON from markdown code block or raw text."""
        # Strategy 1: JSON in a markdown code block
        code_block_match = re.search(r'```(?:json)?\s*\n(.*?)\n```', text, re.DOTALL)
        if code_block_match:
            candidate = code_block_match.group(1).strip()
            return self._fix_json(candidate)

        # Strategy 2: outermost object containing the expected key
        if required_key:
            start = text.find("{")
            end = text.rfind("}")
            if start != -1 and end > start and f'"{required_key}"' in text[start:end + 1]:
                candidate = self._fix_json(text[start:end + 1])
                try:
                    json.loads(candidate)
                    return candidate
                except json.JSONDecodeError:
                    pass

        # Strategy 3: any flat JSON object or array
        json_object_match = re.search(r'\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}', text, re.DOTALL)
        if json_object_match:
            candidate = self._fix_json(json_object_match.group(0))
            try:
                json.loads(candidate)
                return candidate
            except json.JSONDecodeError:
                pass

        json_array_match = re.search(r'\[[^\[\]]*(?:\[[^\[\]]*\][^\[\]]*)*\]', text, re.DOTALL)
        if json_array_match:
            candidate = self._fix_json(json_array_match.group(0))
            try:
                json.loads(candidate)
                return candidate
            except json.JSONDecodeError:
                pass

        # Strategy 4: return as is (last resort)
        return self._fix_json(text.strip())


def _format_number(value: float) -> str:
    return f"{value:g}"
