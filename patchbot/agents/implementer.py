"""
🔧 The Implementer

Turns the assembled request context into an EditSet: a free-text
explanation plus SEARCH/REPLACE blocks (see patchbot.edit_blocks).
"""

from __future__ import annotations

from loguru import logger

from patchbot.agents import BaseAgent
from patchbot.context import RequestContext
from patchbot.edit_blocks import EditSet, NoEditsProduced, parse_edit_set
from patchbot.router import RouterResponse


class ImplementerAgent(BaseAgent):
    role = "implementer"

    system_prompt = """You are the code modification engine inside PatchBot.

Your task is to:
1. Analyze the user's request to modify code
2. Determine which files need to be changed
3. Provide the exact changes using SEARCH/REPLACE blocks
4. Start with a brief explanation of the changes you're making

Response format:
1. An EXPLANATION section with a brief description of the changes
2. A CHANGES section with the SEARCH/REPLACE blocks
3. Nothing may follow the CHANGES section

Every SEARCH/REPLACE block must use this format:
1. The FULL file path alone on a line, verbatim
2. The opening fence and code language, e.g. ```python
3. The start of the search block: <<<<<<< SEARCH
4. A contiguous chunk of lines to search for in the existing source code
5. The dividing line: =======
6. The lines to replace into the source code
7. The end of the replace block: >>>>>>> REPLACE
8. The closing fence: ```

Example response:

EXPLANATION:
Renames `old_function` to `new_function` in `pkg/module.py` and updates its return value.

CHANGES:
pkg/module.py
```python
<<<<<<< SEARCH
def old_function():
    return "old result"
=======
def new_function():
    return "new result"
>>>>>>> REPLACE
```

Rules:
- Every SEARCH section must EXACTLY MATCH the existing file content, character for character.
- A SEARCH/REPLACE block only replaces the first match.
- Use several small, unique blocks rather than one large block.
- Keep SEARCH sections short: just enough lines to be unique.
- To create a new file, leave the SEARCH section empty and put the whole file in REPLACE.
- To move code within a file, use 2 blocks: one to delete it, one to insert it at the new location.
- File contents below are verbatim, including line endings. Copy SEARCH text from them exactly.
- A file ending in "... truncated (N lines total, only the first M are shown)" is cut off:
  only edit lines that are shown.

The request may contain /add, /ignore, .add-files or .ignore directives.
They have already been processed: every relevant file is included below.
"""

    def build_messages(self, context: RequestContext) -> list[dict[str, str]]:
        return [self._system_msg(), self._user_msg(context.render())]

    def parse_response(self, response: RouterResponse, context: RequestContext) -> EditSet:
        edit_set = parse_edit_set(response.content)
        logger.info(
            f"[IMPL] {len(edit_set)} edit blocks across "
            f"{len(edit_set.filenames)} files ({response.model})"
        )
        return edit_set

    def generate_edits(self, context: RequestContext) -> EditSet:
        """Request an edit set for the context; zero blocks is a failure, not a no-op."""
        edit_set = self.run(context)
        if not edit_set.blocks:
            raise NoEditsProduced(
                "No valid search/replace blocks found in the model response",
                response=edit_set.explanation,
            )
        return edit_set
