"""Prompts for session summarization."""

SESSION_SUMMARY_PROMPT = """You are creating a compact summary of a conversation to preserve essential context for continuing the conversation.

**{count} messages to summarize:**

{conversation}
{context_section}

---

**Create a well-structured summary that includes:**

## 1. Conversation Overview
- What is the main goal or problem being addressed?
- What stage is the project/task at?

## 2. Key Technical Decisions
- Architecture choices made
- Technology selections and rationale
- Design patterns or approaches decided

## 3. Code Changes & Files
- Files created, modified, or deleted
- Functions/classes implemented
- APIs or interfaces designed
- Configuration changes

## 4. Important Technical Details
- Constraints or requirements mentioned
- Performance considerations
- Edge cases or special handling
- Dependencies or integrations

## 5. Current Status
- What's completed and working
- What's in progress
- What's pending or blocked

## 6. Unresolved Items
- Open questions
- Bugs to fix
- Features to implement
- Things to investigate

**Format:** Use markdown with clear sections. Be thorough but concise. Preserve specific names, paths, values, and technical details."""

MESSAGE_TEMPLATE = "---\n**Message {index}** ({time})\n{role}:\n{content}"

CONTEXT_SECTION_TEMPLATE = "\n\n**Key Context Extracted:**\n{items}"
