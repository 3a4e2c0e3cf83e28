# flake8: noqa
"""
Backend package for the consultation-notes demo.

Modules:
    settings: Environment-driven configuration with defaults.
    llm:      Streaming client for OpenAI-compatible chat completion APIs.
    prompts:  System prompt and message builders for consultation requests.
    auth:     Bearer token verification against the auth provider's keys.
    relay:    Server-sent event framing of streamed model output.
    main:     FastAPI application wiring everything together.
"""
