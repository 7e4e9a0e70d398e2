"""
API 層

只負責 HTTP 轉換：解析 request、呼叫 core 的 Manager、把業務異常轉成 HTTP status
"""
