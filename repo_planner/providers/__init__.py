"""Provider implementations for the code-hosting platform and the AI service.

Key Components:
    - GitProvider: Abstract base for code-hosting platform providers
    - CompletionProvider: Abstract base for AI chat completion services
    - GitHubRestProvider: GitHub REST API implementation (PyGithub)
    - OpenAICompatibleProvider: OpenAI-compatible chat completions (httpx)
"""
