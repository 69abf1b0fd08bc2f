"""
Resolution Engine

Declarative resource graph core. Contains:
- outputs: deferred value cells
- dag: resource nodes, graph builder, provider registry
- scheduler: readiness-driven resolution engine
- composition: configuration-driven branching
- config: YAML stack configuration
- runtime: stack coordinator and entry point
"""
