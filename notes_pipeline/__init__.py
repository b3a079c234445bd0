"""
Pipeline package for turning free-form text into illustrated visual notes.

Modules:
- core: session orchestration (split, organize, design, paint, retry)
- splitter: decides whether input becomes one note or several
- structure: outline extraction with a fallback for malformed replies
- prompts: deterministic image prompt synthesis
- renderer: image backends and the retry policy
- scheduler: concurrent batch phases over the note store
- store / stages: note units and their stage machine
- completion: text completion adapters (LangChain, Google GenAI)
- export: saving rendered notes as PNG files
"""
