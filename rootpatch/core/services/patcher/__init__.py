"""
Root volume patcher.

Each concern lives in its single-responsibility module inside the
appropriate onion layer:

    data           L0  host layout, thresholds, command names
    domain         L1  conflict policy, ordering invariants (pure)
    resolver       L2  operation compiler, preset expansion
    detection      L3  root volume resolution, KDK discovery (read-only)
    execution      L4  script rendering, privileged executor
    orchestration  L5  single-operation state machine

Import from the layer subpackages; this package stays import-free so
the data layer can be loaded without pulling in the orchestrator.
"""
