"""
API 層

每個 router 只做：解析請求 → 呼叫 core / services → 把異常對應成 HTTP status
"""
