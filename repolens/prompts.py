"""
Centralized prompt repository for the retrieval pipeline.
"""

# ==============================================================================
# 🧭 PROMPTS - query_resolver.py
# ==============================================================================

PROMPT_CONTEXT_CHECK = """You are an AI assistant that determines if a user's message has enough context to be answered.

Does the message have enough context to be answered on its own, or does it reference previous messages?

If the message is a follow-up, uses pronouns or phrases that point at earlier turns ("it", "that function",
"the same file", "what about..."), or otherwise requires context from previous messages,
respond with has_enough_context: false.
"""

PROMPT_QUERY_REWRITE = """Rewrite the current user query to include necessary context from the conversation history.

Rules:
- The rewritten query must be self-contained and clear to someone who has not seen the conversation.
- Keep the user's intent; do not answer the question.
- Mention concrete names (files, functions, features) from the history when the query refers to them.
"""

# ==============================================================================
# 🔍 PROMPTS - oracle.py
# ==============================================================================

PROMPT_FILE_RELEVANCE = """You are an AI assistant that determines if a file is needed to answer a user's query.

INSTRUCTIONS:
1. Focus ONLY on the current file's content. Do not consider other files.
2. A file should ONLY be marked as "needed" if it DIRECTLY contains code that answers the query.
3. A file is NOT needed if:
  - It doesn't contain any code related to the query
  - It only contains references to other files
  - It's a configuration or utility file not directly related to the query
  - The connection to the query is too general or tangential

For each file, provide:
1. needed: true ONLY if this specific file's code directly answers the query
2. sufficient_alone: true ONLY if this file alone completely answers the query
3. reasoning: Explain how THIS FILE's code answers the query. Do not mention other files.
4. code_fragments: Only specific, raw code blocks from THIS FILE that directly answer the query.
   Copy them exactly as they appear in the source, without added characters.

Files already accepted for this query are listed for orientation only. They never make
the current file relevant.

BE STRICT IN YOUR EVALUATION. When in doubt, mark as not needed."""

PROMPT_FILE_RELEVANCE_HUMAN = """User query: {query}

Already accepted files:
{accepted}

File path: {file_path}
File summary: {file_summary}

File content:
{file_content}"""
