"""
Unit tests for QE ADO Sync.

Test modules:
- test_similarity: word-overlap scoring, classification, step diffs
- test_steps_xml: Steps XML serialization and parsing
- test_models: work-item / suite mapping and the JSON contract
- test_comparison_engine: NEW / UPDATE / EXISTS classification against linked test cases
- test_suite_manager: plan → feature → story suite reconciliation
- test_ado_client: REST / SDK calls and error mapping
- test_ado_service: façade operations
- test_run: CLI input handling
"""
