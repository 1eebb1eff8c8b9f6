"""SRT翻訳MCPサーバーパッケージ"""
