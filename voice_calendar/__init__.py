"""Voice Calendar: turn spoken calendar commands into appointments.

Architecture Overview
=====================

A turn is one free-text command from one user.  The command is resolved by
a remote OpenAI assistant that answers with *tool calls*; the core executes
those against the user's stores and the user's Google Calendar.

1. **AssistantSessionManager** reconciles the remote assistant (pinned to a
   low-cost model) and keeps one conversation thread per user.
2. **RunOrchestrator** appends the message, starts a run, polls it to
   completion and answers every ``requires_action`` batch.
3. **ToolDispatcher** routes each tool call to its handler and turns any
   failure into a structured result.
4. **AppointmentResolver** matches loose cancellation requests to stored
   appointments, with edit-distance suggestions for near misses.

Key Design Decisions
--------------------
- **Resilience over precision**: only the date is required to save an
  appointment; title, time and duration fall back to defaults.
- **Sync tiering**: an appointment goes to Google Calendar only once it is
  ready (date and time, or an all-day title) and a token came with the turn.
- **Soft delete**: cancelling changes status; records are never removed.
- **Slot filling**: partially described appointments and unconfirmed bulk
  cancellations are carried to the next turn as a context line.

Package Structure
-----------------
- ``voice_calendar/agent.py`` - turn entry point
- ``voice_calendar/assistant/`` - session manager and run orchestrator
- ``voice_calendar/tools/`` - tool catalog, dispatcher and handlers
- ``voice_calendar/services/`` - storage, calendar client, metrics, similarity
- ``voice_calendar/config.py`` - configuration from environment / SSM
- ``voice_calendar/server.py`` - FastAPI application
- ``voice_calendar/main.py`` - CLI chat interface
"""
