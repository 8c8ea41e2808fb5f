"""ewc_tester.integrations — Outbound Salesforce / EWC API gateway modules."""
