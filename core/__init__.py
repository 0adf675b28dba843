"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- State Store：各團隊的記憶體內狀態（唯一真實來源）
- Manager：隊列、待辦事項、計時器的操作
- Broadcaster：頻道訂閱與廣播
- Dispatcher：兩種傳輸方式共用的請求入口
- Locks：並發控制工具
"""
