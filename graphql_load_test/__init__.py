"""GraphQL 压测工具"""
