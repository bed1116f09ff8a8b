"""tcm_checklist.sync: client-side editing of one migration document.

Modules:
  question_resolver  questionKey/id lookup with questionKey precedence
  debounce           DebouncedValue, a value that settles after a quiet period
  session_store      MigrationSession, local edits + explicit save/reload
  dates              wire timestamp ↔ editable YYYY-MM-DD conversion
  answers            previously-answered predicate, progress, grouping
"""
