from todosync.main import main

main()
