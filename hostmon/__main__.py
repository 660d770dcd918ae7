from hostmon.main import main

main()
