"""
API 層：HTTP（SSE + 請求）與 WebSocket 兩種傳輸方式
"""
